"""Network configuration files: one JSON document describing a whole crawl."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping

from .graphml import SUPPORTED_FORMATS
from .models import CrawlSpec, ValidationError
from .security import SecretError, decrypt_secret
from .sources import ApiEndpoints


logger = logging.getLogger(__name__)

DEFAULT_STORAGE_ROOT = "artifacts/crawls"


def storage_root_from_env() -> Path:
    return Path(os.getenv("RELCRAWL_STORAGE_ROOT", DEFAULT_STORAGE_ROOT))


@dataclass(slots=True)
class OutputConfig:
    folder: Path = Path("networks")
    formats: List[str] = field(default_factory=lambda: ["graphml"])
    basename: str = "network"

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "OutputConfig":
        errors: Dict[str, str] = {}
        formats_raw = raw.get("formats") or ["graphml"]
        if isinstance(formats_raw, str):
            formats_raw = [formats_raw]
        formats = [str(item).strip().lower() for item in formats_raw]
        unsupported = [item for item in formats if item not in SUPPORTED_FORMATS]
        if unsupported:
            errors["output.formats"] = f"unsupported format(s): {', '.join(unsupported)}"
        if not formats:
            errors["output.formats"] = "at least one format is required"
        basename = str(raw.get("basename") or "network").strip()
        if not basename or any(sep in basename for sep in ("/", "\\")):
            errors["output.basename"] = "basename must be a plain file name"
        if errors:
            raise ValidationError(errors)
        return cls(
            folder=Path(str(raw.get("folder") or "networks")),
            formats=list(dict.fromkeys(formats)),
            basename=basename,
        )


@dataclass(slots=True)
class NetworkConfiguration:
    """Everything needed to run one crawl and save its graph."""

    spec: CrawlSpec
    api: ApiEndpoints
    output: OutputConfig

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "NetworkConfiguration":
        if not isinstance(raw, Mapping):
            raise ValidationError({"config": "configuration must be a JSON object"})
        errors: Dict[str, str] = {}

        spec_raw = dict(raw)
        try:
            spec_raw["credentials"] = _resolve_credentials(raw.get("credentials"))
        except SecretError as exc:
            errors["credentials.secret_encrypted"] = str(exc)
            spec_raw["credentials"] = None

        spec = api = output = None
        try:
            spec = CrawlSpec.from_dict(spec_raw)
        except ValidationError as exc:
            errors.update(exc.errors)

        api_raw = raw.get("api")
        if not isinstance(api_raw, Mapping):
            errors["api"] = "api section is required"
        else:
            try:
                api = ApiEndpoints.from_dict(api_raw)
            except ValidationError as exc:
                errors.update(exc.errors)

        output_raw = raw.get("output") or {}
        if not isinstance(output_raw, Mapping):
            errors["output"] = "output must be an object"
        else:
            try:
                output = OutputConfig.from_dict(output_raw)
            except ValidationError as exc:
                errors.update(exc.errors)

        if api is not None and spec is not None:
            missing = [d.value for d in spec.ordered_directions() if d not in api.related_urls]
            if missing:
                errors["api.related"] = f"no URL template for direction(s): {', '.join(missing)}"

        if errors or spec is None or api is None or output is None:
            raise ValidationError(errors)
        return cls(spec=spec, api=api, output=output)


def _resolve_credentials(raw: object) -> object:
    if not isinstance(raw, Mapping) or not raw.get("secret_encrypted"):
        return raw
    resolved = {key: value for key, value in raw.items() if key != "secret_encrypted"}
    resolved["secret"] = decrypt_secret(str(raw["secret_encrypted"]))
    return resolved


def load_configuration(path: Path | str) -> NetworkConfiguration:
    config_path = Path(path)
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ValidationError({"config": f"configuration file not found: {config_path}"}) from None
    except json.JSONDecodeError as exc:
        raise ValidationError({"config": f"invalid JSON in {config_path}: {exc}"}) from exc
    configuration = NetworkConfiguration.from_dict(raw)
    logger.debug("Loaded network configuration from %s", config_path)
    return configuration


__all__ = [
    "DEFAULT_STORAGE_ROOT",
    "NetworkConfiguration",
    "OutputConfig",
    "load_configuration",
    "storage_root_from_env",
]
