"""Settings library for the application configuration.

Provides:
    - Schema validation for the settings.json structure.
    - Loading, saving and reverting configuration sections.
    - Application paths for the configuration file and the local store.
"""

import json
import logging
import os
import pathlib
import shutil
from typing import Dict, Any, Optional

from PySide6 import QtCore

from ..status import status

app_name: str = 'SelfTracker'

#: Environment variable overriding the application data directory
CONFIG_DIR_ENV_KEY: str = 'SELFTRACKER_CONFIG_DIR'

SETTINGS_SCHEMA: Dict[str, Any] = {
    'remote': {
        'type': dict,
        'required': True,
        'item_schema': {
            'url': {'type': str, 'required': True},
            'token': {'type': str, 'required': False},
            'timeout': {'type': int, 'required': True, 'minimum': 1},
            'max_retries': {'type': int, 'required': True, 'minimum': 1},
            'retry_delay': {'type': (int, float), 'required': True, 'minimum': 0},
        }
    },
    'storage': {
        'type': dict,
        'required': True,
        'item_schema': {
            'prefix': {'type': str, 'required': True},
            'cleanup_days': {'type': int, 'required': True, 'minimum': 1},
        }
    },
    'sync': {
        'type': dict,
        'required': True,
        'item_schema': {
            'interval': {'type': int, 'required': True, 'minimum': 0},
            'export_version': {'type': str, 'required': True},
        }
    },
}


def _validate_section(section_name: str, section: Dict[str, Any], item_schema: Dict[str, Any]) -> None:
    """Validate a single section of the settings against its item schema.

    Args:
        section_name: Name of the section, used in error messages.
        section: The section data.
        item_schema: Mapping of field names to their type, required and minimum constraints.

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If a required field is missing or a value is below its minimum.
    """
    logging.debug(f'Validating "{section_name}" section.')
    for field, specs in item_schema.items():
        if field not in section:
            if specs['required']:
                msg = f'Section "{section_name}" missing "{field}".'
                logging.error(msg)
                raise ValueError(msg)
            continue

        value = section[field]
        # bool is an int subclass but never a valid number here
        if isinstance(value, bool) or not isinstance(value, specs['type']):
            msg = (
                f'Section "{section_name}" field "{field}" must be {specs["type"]}, '
                f'got {type(value)}.'
            )
            logging.error(msg)
            raise TypeError(msg)

        if 'minimum' in specs and value < specs['minimum']:
            msg = f'Section "{section_name}" field "{field}" must be >= {specs["minimum"]}, got {value}.'
            logging.error(msg)
            raise ValueError(msg)


class ConfigPaths:
    """Manage application file paths and ensure the default template and directories exist."""

    def __init__(self) -> None:
        QtCore.QCoreApplication.setApplicationName(app_name)
        QtCore.QCoreApplication.setOrganizationName('')

        override = os.environ.get(CONFIG_DIR_ENV_KEY)
        if override:
            app_data_dir = pathlib.Path(override)
        else:
            p = QtCore.QStandardPaths.writableLocation(QtCore.QStandardPaths.StandardLocation.AppDataLocation)
            app_data_dir = pathlib.Path(p)
        logging.debug(f'Using app data directory: {app_data_dir}')

        self.template_dir: pathlib.Path = pathlib.Path(__file__).parent.parent / 'config'
        self.settings_template: pathlib.Path = self.template_dir / 'settings.json.template'

        self.config_dir: pathlib.Path = app_data_dir / 'config'
        self.storage_dir: pathlib.Path = app_data_dir / 'storage'

        self.settings_path: pathlib.Path = self.config_dir / 'settings.json'
        self.storage_path: pathlib.Path = self.storage_dir / 'local.db'

        self._verify_and_prepare()

    def _verify_and_prepare(self) -> None:
        """Verify the template exists, create missing directories and copy the default settings.

        Raises:
            FileNotFoundError: If the settings template is missing.
        """
        if not self.settings_template.exists():
            msg: str = f'Missing settings template: {self.settings_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)

        for directory in (self.config_dir, self.storage_dir):
            if not directory.exists():
                logging.debug(f'Creating directory: {directory}')
                directory.mkdir(parents=True, exist_ok=True)

        if not self.settings_path.exists():
            logging.debug(f'Copying default settings from template to {self.settings_path}')
            shutil.copy(self.settings_template, self.settings_path)

    def revert_settings_to_template(self) -> None:
        """Restore settings.json from the default template file."""
        logging.debug(f'Reverting settings to template: {self.settings_template}')
        shutil.copy(self.settings_template, self.settings_path)


class SettingsAPI(ConfigPaths):
    """
    Provides an interface to get/set/revert/save settings.json sections.
    """

    def __init__(self, settings_path: Optional[str] = None) -> None:
        """Initialize SettingsAPI and load the settings data.

        Args:
            settings_path: Optional path to a custom settings.json file.
        """
        super().__init__()

        self.settings_path: pathlib.Path = pathlib.Path(settings_path) if settings_path else self.settings_path

        self.settings_data: Dict[str, Any] = {k: {} for k in SETTINGS_SCHEMA}
        self.load_settings()

    def load_settings(self) -> Dict[str, Any]:
        """Load settings.json from disk and validate against the schema.

        Returns:
            The loaded settings dictionary.

        Raises:
            status.ConfigNotFoundException: If the file is missing.
            status.ConfigInvalidException: If JSON parsing or validation fails.
        """
        logging.debug(f'Loading settings from "{self.settings_path}"')
        if not self.settings_path.exists():
            raise status.ConfigNotFoundException(str(self.settings_path))

        try:
            with self.settings_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
            self.validate_settings_data(data)
        except (ValueError, TypeError) as ex:
            raise status.ConfigInvalidException(str(ex)) from ex

        self.settings_data = data
        return self.settings_data

    def validate_settings_data(self, data: Dict[str, Any] = None) -> None:
        """Validate settings data against SETTINGS_SCHEMA.

        Args:
            data (dict, optional): Settings data to validate. Defaults to the loaded data.

        Raises:
            ValueError: If a required section or field is missing.
            TypeError: If a section or field has the wrong type.
        """
        if data is None:
            data = self.settings_data
        if not isinstance(data, dict) or not data:
            raise ValueError('Settings data is empty.')

        for section_name, specs in SETTINGS_SCHEMA.items():
            if specs.get('required') and section_name not in data:
                raise ValueError(f'Missing required section: {section_name}')
            if not isinstance(data[section_name], specs['type']):
                raise TypeError(f'Section "{section_name}" must be {specs["type"]}, got {type(data[section_name])}.')
            _validate_section(section_name, data[section_name], specs['item_schema'])

        logging.debug('Settings data is valid.')

    def get_section(self, section_name: str) -> Dict[str, Any]:
        """Retrieve a copy of a settings section.

        Raises:
            KeyError: If section_name is unknown.
        """
        return self.settings_data[section_name].copy()

    def set_section(self, section_name: str, new_data: Dict[str, Any]) -> None:
        """Replace, validate and persist a settings section.

        The previous section is restored when validation fails.

        Raises:
            ValueError: If section_name is unknown or validation fails.
            TypeError: If a field has the wrong type.
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

        from ..core.signals import signals
        signals.configSectionChanged.emit(section_name)

    def revert_section(self, section_name: str) -> None:
        """Revert a settings section to its template default and save it.

        Raises:
            ValueError: If section_name is unknown.
        """
        if section_name not in SETTINGS_SCHEMA:
            msg: str = f'Unknown section_name for revert: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.settings_template.open('r', encoding='utf-8') as f:
            template_data: Dict[str, Any] = json.load(f)

        self.settings_data[section_name] = template_data[section_name]
        self.save_section(section_name)

        from ..core.signals import signals
        signals.configSectionChanged.emit(section_name)

    def save_section(self, section_name: str) -> None:
        """Persist a single settings section, leaving the other sections on disk untouched."""
        if section_name not in SETTINGS_SCHEMA:
            msg: str = f'Unknown section_name for save: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        original_data: Dict[str, Any] = {}
        if self.settings_path.exists():
            with self.settings_path.open('r', encoding='utf-8') as f:
                original_data = json.load(f)

        new_data: Dict[str, Any] = original_data.copy()
        new_data[section_name] = self.settings_data[section_name]

        with self.settings_path.open('w', encoding='utf-8') as f:
            json.dump(new_data, f, indent=4, ensure_ascii=False)


settings: SettingsAPI = SettingsAPI()
