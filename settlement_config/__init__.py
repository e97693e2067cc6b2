"""
settlement_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain engine settings at runtime through
    ``get_active_config()``. Engines never read files themselves; callers
    pass the returned ``EngineSettings`` to the engines' ``from_settings``
    constructors.

Architecture position:
    Configuration -- sits above ``settlement_kernel``. The kernel and the
    engines MUST NEVER import from ``settlement_config``.

Failure modes:
    - ``FileNotFoundError`` -- explicit path does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``ValueError`` -- unknown keys, bad enum names, negative tolerances.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``SETTLEMENT_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying every settlement back to the settings that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from settlement_config.loader import load_yaml_file, parse_engine_settings
from settlement_config.schema import EngineSettings

_logger = logging.getLogger("settlement_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

__all__ = ["EngineSettings", "get_active_config", "DEFAULT_CONFIG_PATH"]


def get_active_config(path: Path | str | None = None) -> EngineSettings:
    """The ONLY public configuration entrypoint.

    Args:
        path: Override path to a settings YAML file. Defaults to the
            packaged ``defaults.yaml``.

    Returns:
        Validated, frozen EngineSettings.
    """
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    settings = parse_engine_settings(load_yaml_file(source))

    _logger.info(
        "SETTLEMENT_CONFIG_TRACE",
        extra={
            "trace_type": "SETTLEMENT_CONFIG_TRACE",
            "config_id": settings.config_id,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "source": str(source),
            "transfer_strategy": settings.transfer_strategy.value,
        },
    )
    return settings
