"""
Runtime configuration for the datatables service.

Values are read from the environment once (validated through
read_env_setting) into a value object that is injected into the
service, pipeline and harness. Stages never read ambient global state.
"""
from typing import Any, Dict, FrozenSet, Iterable, Optional

from constants import (
    DEFAULT_PIPELINE_ORDER, EXECUTION_MODES, FALSE_VALUES, MODE_HYBRID,
    MODE_LEGACY, TRUE_VALUES,
)
from error_handler import ConfigurationError, read_env_setting
from logging_helper import DEBUG_ENVIRONMENTS


def _to_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _to_csv_set(raw: str) -> FrozenSet[str]:
    return frozenset(item.strip() for item in raw.split(',') if item.strip())


class DatatablesSettings:
    """
    Feature flags and environment for the datatables service.

    Args:
        pipeline_enabled: Gate for the staged pipeline (off by default)
        mode: legacy | pipeline | hybrid
        pipeline_order: Documented stage sequence (validated, not enforced)
        environment: Deployment environment name (local, testing, production...)
        inspector_dir: Where hybrid diff summaries are written
        allowed_tables: Optional whitelist; empty means every registered table
        id_salt: Salt for the hash suffix appended to encoded row ids
    """

    def __init__(self, pipeline_enabled: bool = False, mode: str = MODE_LEGACY,
                 pipeline_order: Optional[Iterable[str]] = None,
                 environment: str = 'production',
                 inspector_dir: str = 'storage/datatable-inspector',
                 allowed_tables: Optional[Iterable[str]] = None,
                 id_salt: str = 'canvastack'):
        if mode not in EXECUTION_MODES:
            raise ConfigurationError(f"Unknown datatables mode: {mode}")

        self.pipeline_enabled = bool(pipeline_enabled)
        self.mode = mode
        self.pipeline_order = tuple(pipeline_order or DEFAULT_PIPELINE_ORDER)
        self.environment = (environment or 'production').strip().lower()
        self.inspector_dir = inspector_dir
        self.allowed_tables = frozenset(allowed_tables or ())
        self.id_salt = id_salt

    @classmethod
    def from_env(cls) -> 'DatatablesSettings':
        """Load settings from CANVASTACK_* environment variables."""
        return cls(
            pipeline_enabled=read_env_setting(
                'CANVASTACK_DT_PIPELINE', default=False, converter=_to_bool
            ),
            mode=read_env_setting(
                'CANVASTACK_DT_MODE', default=MODE_LEGACY,
                converter=lambda raw: raw.strip().lower(),
                validator=lambda value: value in EXECUTION_MODES
            ),
            environment=read_env_setting(
                'CANVASTACK_ENV', default='production',
                converter=lambda raw: raw.strip().lower()
            ),
            inspector_dir=read_env_setting(
                'CANVASTACK_DT_INSPECTOR_DIR', default='storage/datatable-inspector'
            ),
            allowed_tables=read_env_setting(
                'CANVASTACK_DT_ALLOWED_TABLES', default=frozenset(), converter=_to_csv_set
            ),
            id_salt=read_env_setting('CANVASTACK_ID_SALT', default='canvastack'),
        )

    @property
    def is_debug_environment(self) -> bool:
        return self.environment in DEBUG_ENVIRONMENTS

    @property
    def inspector_enabled(self) -> bool:
        """Hybrid diff summaries are written in local environments or hybrid mode."""
        return self.environment == 'local' or self.mode == MODE_HYBRID

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pipeline_enabled': self.pipeline_enabled,
            'mode': self.mode,
            'pipeline_order': list(self.pipeline_order),
            'environment': self.environment,
            'inspector_dir': self.inspector_dir,
            'allowed_tables': sorted(self.allowed_tables),
        }
