"""Hydra structured config dataclasses.

These mirror the Pydantic ``ProjectConfig`` for Hydra schema validation.
At runtime the Hydra DictConfig is converted to ``ProjectConfig`` via
``cli._to_project_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from hydra.core.config_store import ConfigStore


@dataclass
class ServiceConf:
    api_key: str = "${oc.env:OPENAI_API_KEY,''}"
    api_version: str = "${oc.env:AZURE_OPENAI_API_VERSION,''}"
    endpoint: str = "${oc.env:AZURE_OPENAI_ENDPOINT,''}"


@dataclass
class ModelEndpointOverrideConf:
    endpoint: str = ""
    api_key: str = ""
    api_version: str = ""
    api_type: str | None = None


@dataclass
class ModelConf:
    simple: str = "gpt-4o-mini"
    complex: str = "gpt-4o"
    partition: str | None = None
    synthesis: str | None = None
    overrides: dict[str, ModelEndpointOverrideConf] = field(default_factory=dict)


@dataclass
class RatesConf:
    input: float = 0.0
    output: float = 0.0


@dataclass
class StudyNotesConf:
    # --- Dispatch + CLI-only fields ---
    mode: str = "run"
    verbose: bool = False
    quiet: bool = False
    markdown_file: str | None = None

    # --- ProjectConfig fields (1:1 mapping) ---
    project_name: str = "study-notes"
    input_pdf: str | None = None
    output_dir: str = "output/"
    images_dir: str = "output/images/"
    output_format: str = "markdown"

    service: ServiceConf = field(default_factory=ServiceConf)
    models: ModelConf = field(default_factory=ModelConf)
    rates: dict[str, RatesConf] = field(default_factory=lambda: {
        "gpt-4o-mini": RatesConf(input=0.15e-6, output=0.60e-6),
        "gpt-4o": RatesConf(input=2.50e-6, output=5.00e-6),
    })

    min_image_dimension: int = 50
    complex_image_min_width: int = 500
    complex_image_min_bytes: int = 102_400
    image_max_width: int = 512
    image_jpeg_quality: int = 82

    vision_batch_size: int = 5
    vision_detail: str = "low"
    vision_max_tokens: int = 3000
    partition_max_tokens: int = 4000
    section_max_tokens: int = 4000
    vision_temperature: float = 0.2
    synthesis_temperature: float = 0.0
    request_timeout: float = 120.0

    synthesis_level: str = "top"


# Keys present in StudyNotesConf that are NOT part of ProjectConfig.
CLI_ONLY_KEYS = frozenset({"mode", "verbose", "quiet", "markdown_file"})


def register_configs() -> None:
    """Register the structured config schema with Hydra's ConfigStore."""
    cs = ConfigStore.instance()
    cs.store(name="sng_schema", node=StudyNotesConf)
