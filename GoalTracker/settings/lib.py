"""Settings library for application preferences and GitHub OAuth configuration.

Provides:
    - Schema validation and enforcement for settings.json structure.
    - Loading, saving, reverting, and managing application settings.
    - Application paths for the settings file and the local goal database.
"""

import json
import logging
import pathlib
import shutil
from typing import Dict, Any, List

from PySide6 import QtCore, QtWidgets

from ..status import status

app_name: str = 'GoalTracker'

GOAL_TYPES: List[str] = ['book_reading', 'fitness', 'programming']
CREDENTIAL_BACKENDS: List[str] = ['system', 'memory']

GENERAL_KEYS: List[str] = [
    'locale',
    'show_completed_goals',
    'default_goal_type',
    'enable_notifications',
    'credential_backend',
    'credential_service',
]

GITHUB_KEYS: List[str] = [
    'authorize_url',
    'token_url',
    'api_url',
    'scopes',
    'redirect_host',
    'redirect_port',
    'redirect_path',
    'timeout',
]

SETTINGS_SCHEMA: Dict[str, Any] = {
    'general': {
        'type': dict,
        'required': True,
        'item_schema': {
            'locale': {'type': str, 'required': True},
            'show_completed_goals': {'type': bool, 'required': True},
            'default_goal_type': {'type': str, 'required': True, 'allowed_values': GOAL_TYPES},
            'enable_notifications': {'type': bool, 'required': True},
            'credential_backend': {'type': str, 'required': True, 'allowed_values': CREDENTIAL_BACKENDS},
            'credential_service': {'type': str, 'required': True},
        }
    },
    'github': {
        'type': dict,
        'required': True,
        'item_schema': {
            'authorize_url': {'type': str, 'required': True, 'format': 'https'},
            'token_url': {'type': str, 'required': True, 'format': 'https'},
            'api_url': {'type': str, 'required': True, 'format': 'https'},
            'scopes': {'type': list, 'required': True},
            'redirect_host': {'type': str, 'required': True},
            'redirect_port': {'type': int, 'required': True},
            'redirect_path': {'type': str, 'required': True},
            'timeout': {'type': int, 'required': True},
        }
    },
    'targets': {
        'type': dict,
        'required': True,
        'item_schema': {k: {'type': int, 'required': True} for k in GOAL_TYPES}
    },
}


def _is_type(value: Any, _type: type) -> bool:
    # bool is a subclass of int, but a flag is never a valid number here
    if _type is int and isinstance(value, bool):
        return False
    return isinstance(value, _type)


def _validate_section(section_name: str, section: Dict[str, Any], item_schema: Dict[str, Any]) -> None:
    """Validate a settings section against its item schema.

    Args:
        section_name: Name of the section, used in error messages.
        section: The section data.
        item_schema: Mapping of key names to their type, requirement, and format constraints.

    Raises:
        TypeError: If the section is not a dict or a value has the wrong type.
        ValueError: If a required key is missing or a value fails its constraint.
    """
    logging.debug(f'Validating "{section_name}" section.')
    if not isinstance(section, dict):
        msg: str = f'"{section_name}" must be a dict.'
        logging.error(msg)
        raise TypeError(msg)

    for key, specs in item_schema.items():
        if key not in section:
            if specs.get('required'):
                msg = f'"{section_name}" is missing "{key}".'
                logging.error(msg)
                raise ValueError(msg)
            continue

        value = section[key]
        if not _is_type(value, specs['type']):
            msg = f'"{section_name}.{key}" must be {specs["type"].__name__}, got {type(value).__name__}.'
            logging.error(msg)
            raise TypeError(msg)

        allowed = specs.get('allowed_values')
        if allowed and value not in allowed:
            msg = f'"{section_name}.{key}" must be one of {allowed}, got "{value}".'
            logging.error(msg)
            raise ValueError(msg)

        if specs.get('format') == 'https' and not value.startswith('https://'):
            msg = f'"{section_name}.{key}" must be an https URL, got "{value}".'
            logging.error(msg)
            raise ValueError(msg)

    if section_name == 'github':
        if not 0 <= section['redirect_port'] <= 65535:
            msg = f'"github.redirect_port" is out of range: {section["redirect_port"]}.'
            logging.error(msg)
            raise ValueError(msg)
        if not section['redirect_path'].startswith('/'):
            msg = f'"github.redirect_path" must start with "/", got "{section["redirect_path"]}".'
            logging.error(msg)
            raise ValueError(msg)
        if not all(isinstance(s, str) for s in section['scopes']):
            msg = '"github.scopes" must be a list of strings.'
            logging.error(msg)
            raise TypeError(msg)


class ConfigPaths:
    """Manage application file paths and ensure default templates and directories exist.

    This class initializes paths for the settings template, the user settings file and
    the local database, creating missing directories and copying the default settings
    into the user data directory.
    """

    def __init__(self) -> None:
        # Set the application name and organization
        QtWidgets.QApplication.setApplicationName(app_name)
        QtWidgets.QApplication.setOrganizationName('')
        logging.debug(f'Setting application name: {app_name}')

        # Get the app data directory
        p = QtCore.QStandardPaths.writableLocation(QtCore.QStandardPaths.AppDataLocation)
        app_data_dir = pathlib.Path(p)
        logging.debug(f'Using app data directory: {app_data_dir}')

        self.template_dir: pathlib.Path = pathlib.Path(__file__).parent.parent / 'config'
        self.settings_template: pathlib.Path = self.template_dir / 'settings.json.template'

        self.config_dir: pathlib.Path = app_data_dir / 'config'
        self.db_dir: pathlib.Path = self.config_dir / 'db'

        self.settings_path: pathlib.Path = self.config_dir / 'settings.json'
        self.db_path: pathlib.Path = self.db_dir / 'goals.db'

        self._verify_and_prepare()

    def _verify_and_prepare(self) -> None:
        """Verify the template exists and prepare configuration directories and files.

        Raises:
            FileNotFoundError: If the template directory or settings template is missing.
        """
        logging.debug(f'Verifying required directories and templates in {self.template_dir}')
        if not self.template_dir.exists():
            msg: str = f'Missing template directory: {self.template_dir}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        if not self.settings_template.exists():
            msg = f'Missing settings template: {self.settings_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)

        if not self.config_dir.exists():
            logging.debug(f'Creating config directory: {self.config_dir}')
            self.config_dir.mkdir(parents=True, exist_ok=True)

        if not self.db_dir.exists():
            logging.debug(f'Creating db directory: {self.db_dir}')
            self.db_dir.mkdir(parents=True, exist_ok=True)

        # Ensure a valid settings file exists even if we haven't yet set it up
        if not self.settings_path.exists():
            logging.debug(f'Copying default settings from template to {self.settings_path}')
            shutil.copy(self.settings_template, self.settings_path)

    def revert_settings_to_template(self) -> None:
        """Restore settings.json from the default template file.

        Raises:
            FileNotFoundError: If the settings template file is missing.
        """
        logging.debug(f'Reverting settings to template: {self.settings_template}')
        if not self.settings_template.exists():
            msg: str = f'Settings template not found: {self.settings_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        shutil.copy(self.settings_template, self.settings_path)


class SettingsAPI(ConfigPaths):
    """
    Provides an interface to get/set/revert/save settings.json sections.

    Keys of the ``general`` section are also available with dictionary-style access,
    e.g. ``settings['locale']``.
    """

    def __init__(self) -> None:
        super().__init__()

        self._signals_blocked: bool = False

        self.settings_data: Dict[str, Any] = {}
        for k in SETTINGS_SCHEMA.keys():
            self.settings_data[k] = {}

        self.init_data()

    def __getitem__(self, key: str) -> Any:
        """Retrieve a general setting using dictionary-style access.

        Raises:
            KeyError: If key is not in GENERAL_KEYS.
        """
        if key not in GENERAL_KEYS:
            raise KeyError(f'Invalid setting key: {key}, must be one of {GENERAL_KEYS}')

        _type = SETTINGS_SCHEMA['general']['item_schema'][key]['type']
        v = self.settings_data['general'].get(key)

        if not _is_type(v, _type):
            logging.error(f'Setting "{key}" is not of type {_type}, got {type(v)}.')
            return None

        return v

    def __setitem__(self, key: str, value: Any) -> None:
        """Assign a general setting using dictionary-style access and persist it.

        Raises:
            KeyError: If key is not in GENERAL_KEYS.
            ValueError: If the value is not allowed for the key.
        """
        if key not in GENERAL_KEYS:
            raise KeyError(f'Invalid setting key: {key}, must be one of {GENERAL_KEYS}')

        specs = SETTINGS_SCHEMA['general']['item_schema'][key]
        _type = specs['type']
        if not _is_type(value, _type):
            logging.warning(f'Setting "{key}" is not of type {_type}, got {type(value)}.')
            if _type == str:
                value = str(value)
            elif _type == bool:
                value = bool(value)

        allowed = specs.get('allowed_values')
        if allowed and value not in allowed:
            msg = f'Setting "{key}" must be one of {allowed}, got "{value}".'
            logging.error(msg)
            raise ValueError(msg)

        self.settings_data['general'][key] = value
        self.save_section('general')

        if self._signals_blocked:
            return

        from ..ui.actions import signals
        signals.metadataChanged.emit(key, value)

    def block_signals(self, v: bool) -> None:
        """Enable or disable emission of configuration change signals."""
        self._signals_blocked = v

    @QtCore.Slot()
    def init_data(self) -> None:
        """Reload settings data, emitting UI update signals."""
        self.load_settings()

        if self._signals_blocked:
            return

        from ..ui.actions import signals
        for section in SETTINGS_SCHEMA.keys():
            signals.configSectionChanged.emit(section)

    def load_settings(self) -> Dict[str, Any]:
        """Load settings.json from disk and validate against schema.

        Returns:
            The loaded settings dictionary.

        Raises:
            status.SettingsInvalidException: If the file is missing, cannot be parsed, or fails validation.
        """
        logging.debug(f'Loading settings from "{self.settings_path}"')
        if not self.settings_path.exists():
            raise status.SettingsInvalidException(f'Settings file not found: {self.settings_path}')

        try:
            with self.settings_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
            self.validate_settings_data(data)
        except (ValueError, TypeError) as ex:
            raise status.SettingsInvalidException(str(ex)) from ex

        self.settings_data = data
        return self.settings_data

    def validate_settings_data(self, data: Dict[str, Any] = None) -> None:
        """Validate settings data against SETTINGS_SCHEMA.

        Args:
            data (dict, optional): Settings data to validate. Defaults to self.settings_data.

        Raises:
            ValueError: If a required section or key is missing or a value is not allowed.
            TypeError: If a section or value has the wrong type.
        """
        if data is None:
            data = self.settings_data
        if not isinstance(data, dict) or not data:
            raise ValueError('Settings data is empty.')

        for section_name, specs in SETTINGS_SCHEMA.items():
            if section_name not in data:
                if specs.get('required'):
                    raise ValueError(f'Missing required section: {section_name}')
                continue
            _validate_section(section_name, data[section_name], specs['item_schema'])

        logging.debug('Settings data is valid.')

    def get_section(self, section_name: str) -> Dict[str, Any]:
        """Retrieve a copy of a settings section.

        Raises:
            KeyError: If section_name is not a known section.
        """
        return self.settings_data[section_name].copy()

    def set_section(self, section_name: str, new_data: Dict[str, Any]) -> None:
        """Replace, validate and persist a settings section.

        The previous section is restored when validation fails.

        Raises:
            ValueError: If section_name is unrecognized or the data is invalid.
            TypeError: If the data has the wrong types.
        """
        if section_name not in SETTINGS_SCHEMA:
            msg: str = f'Unknown section_name for set: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        current_section_data: Dict[str, Any] = self.settings_data.get(section_name, {}).copy()

        self.settings_data[section_name] = new_data
        try:
            self.validate_settings_data()
        except (ValueError, TypeError) as e:
            logging.error(f'Validation error on set_section("{section_name}"): {e}')
            self.settings_data[section_name] = current_section_data
            raise

        self.save_section(section_name)

        if self._signals_blocked:
            return

        from ..ui.actions import signals
        signals.configSectionChanged.emit(section_name)

    def revert_section(self, section_name: str) -> None:
        """Revert a settings section to its template default and save.

        Raises:
            ValueError: If section_name is not present in the template.
        """
        if section_name not in SETTINGS_SCHEMA:
            msg: str = f'Unknown section_name for revert: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.settings_template.open('r', encoding='utf-8') as f:
            template_data: Dict[str, Any] = json.load(f)

        if section_name not in template_data:
            msg = f'No template-based revert logic for section "{section_name}".'
            logging.error(msg)
            raise ValueError(msg)

        self.settings_data[section_name] = template_data[section_name]
        self.save_section(section_name)

        if self._signals_blocked:
            return

        from ..ui.actions import signals
        signals.configSectionChanged.emit(section_name)

    def save_section(self, section_name: str) -> None:
        """Persist a single settings section to settings.json, keeping the other sections on disk.

        Raises:
            ValueError: If section_name is not recognized.
        """
        if section_name not in SETTINGS_SCHEMA:
            msg: str = f'Unknown section_name for save: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.settings_path.open('r', encoding='utf-8') as f:
            original_data: Dict[str, Any] = json.load(f)

        new_data: Dict[str, Any] = original_data.copy()
        new_data[section_name] = self.settings_data[section_name]

        with self.settings_path.open('w', encoding='utf-8') as f:
            json.dump(new_data, f, indent=4, ensure_ascii=False)
        logging.debug(f'Saved section "{section_name}" to "{self.settings_path}"')


settings: SettingsAPI = SettingsAPI()
