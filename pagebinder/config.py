"""Configuration model and loaders for pagebinder.

Responsibilities:
- Define run configuration as a typed dataclass.
- Validate every field at once and compile regexes into `CompiledPatterns`.
- Provide loader entry points for file- and environment-based configuration.

Key types:
- `PagebinderConfig`: normalized settings for one pipeline run.
- `CompiledPatterns`: compiled regexes and resolved comparators for a valid config.
- `ConfigLoader`: static construction helpers for `PagebinderConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
import re
from typing import Any, Callable, Mapping, TypeVar

import yaml

from .errors import ConfigurationError
from .io.imaging import DEFAULT_SENSIBILITY
from .io.ordering import (
    DEFAULT_NUMBER_REGEX,
    DEFAULT_VOLUME_CHAPTER_REGEX,
    NaturalOrder,
    PathComparator,
)
from .models.datatypes import CollectionDepth, GroupingStrategy, SeriesMetadata
from .parsing import (
    normalize_optional_string,
    parse_permissive_boolean,
    parse_volume_sizes,
)


DEFAULT_VOLUME_SEPARATOR = " - "
DEFAULT_TITLE = "Untitled"

_AUTO_STRATEGY_TOKENS = frozenset({"auto", "none"})
_Parsed = TypeVar("_Parsed")


def parse_grouping_strategy(value: object, field_name: str) -> GroupingStrategy | None:
    """Parse a grouping strategy token; blank or `auto` means "use the recommendation".

    Raises:
        ValueError: If the token names no known strategy.
    """

    if isinstance(value, GroupingStrategy):
        return value
    normalized = normalize_optional_string(value)
    if normalized is None:
        return None
    token = normalized.lower().replace("-", "_")
    if token in _AUTO_STRATEGY_TOKENS:
        return None
    try:
        return GroupingStrategy(token)
    except ValueError as exc:
        supported = ", ".join(strategy.value for strategy in GroupingStrategy)
        raise ValueError(
            f"Unsupported `{field_name}` value `{normalized}`; supported: auto, {supported}."
        ) from exc


def parse_collection_depth(value: object, field_name: str) -> CollectionDepth:
    """Parse a collection depth token, defaulting blank values to `deep`."""

    if isinstance(value, CollectionDepth):
        return value
    normalized = normalize_optional_string(value)
    if normalized is None:
        return CollectionDepth.DEEP
    try:
        return CollectionDepth(normalized.lower())
    except ValueError as exc:
        raise ValueError(
            f"Unsupported `{field_name}` value `{normalized}`; supported: deep, shallow."
        ) from exc


@dataclass(frozen=True, slots=True)
class CompiledPatterns:
    """Compiled regexes and effective comparators of a validated configuration."""

    chapter_regex: re.Pattern[str]
    page_regex: re.Pattern[str]
    name_regex: re.Pattern[str]
    chapter_comparator: PathComparator
    page_comparator: PathComparator


@dataclass(slots=True)
class PagebinderConfig:
    """Configuration for one pipeline run.

    Attributes:
        source_path: Root directory holding chapter directories or pages.
        target_path: Directory receiving generated volumes.
        metadata: Series metadata; the title defaults to the source directory name.
        collection_depth: `deep` (source/chapter/page) or `shallow` (source/page).
        grouping_strategy: Explicit strategy, or `None` to adopt the analysis result.
        chapter_name_regex: Numeric-key pattern for chapter directory names.
        page_name_regex: Numeric-key pattern for page file names.
        name_grouping_regex: `(volume, chapter)` pattern for Name grouping.
        chapter_comparator: Custom chapter ordering; overrides the chapter regex.
        page_comparator: Custom page ordering; overrides the page regex.
        image_analysis_sensibility: Gray-fraction threshold in percent (0-100).
        volume_sizes: Chapter counts per volume for Manual grouping.
        volume_separator: Text between title and `Volume N` in file names.
        create_output_directory: Write into `target/<title>` instead of `target`.
        concurrency_limit: Bound on concurrent file-system reads.
        analysis_workers: Worker count of the image-analysis process pool.
        cover_scan_depth: Leading pages per chapter inspected for covers.
    """

    source_path: Path | None = None
    target_path: Path | None = None
    metadata: SeriesMetadata | None = None
    collection_depth: CollectionDepth = CollectionDepth.DEEP
    grouping_strategy: GroupingStrategy | None = None
    chapter_name_regex: str | None = None
    page_name_regex: str | None = None
    name_grouping_regex: str | None = None
    chapter_comparator: PathComparator | None = None
    page_comparator: PathComparator | None = None
    image_analysis_sensibility: int = DEFAULT_SENSIBILITY
    volume_sizes: tuple[int, ...] | None = None
    volume_separator: str = DEFAULT_VOLUME_SEPARATOR
    create_output_directory: bool = True
    concurrency_limit: int | None = None
    analysis_workers: int | None = None
    cover_scan_depth: int = 1
    extra: dict[str, str] = field(default_factory=dict)

    def validate(self) -> CompiledPatterns:
        """Validate every field and return compiled patterns.

        Raises:
            ConfigurationError: Listing every problem found, not only the first.
        """

        errors: list[str] = []
        chapter_regex = self._compile(self.chapter_name_regex, "chapter_name_regex", DEFAULT_NUMBER_REGEX, errors)
        page_regex = self._compile(self.page_name_regex, "page_name_regex", DEFAULT_NUMBER_REGEX, errors)
        name_regex = self._compile(
            self.name_grouping_regex,
            "name_grouping_regex",
            DEFAULT_VOLUME_CHAPTER_REGEX,
            errors,
        )

        if not isinstance(self.image_analysis_sensibility, int) or isinstance(
            self.image_analysis_sensibility, bool
        ):
            errors.append("`image_analysis_sensibility` must be an integer between 0 and 100.")
        elif not 0 <= self.image_analysis_sensibility <= 100:
            errors.append("`image_analysis_sensibility` must be an integer between 0 and 100.")

        if self.volume_sizes is not None:
            if not self.volume_sizes:
                errors.append("`volume_sizes` must not be empty when provided.")
            elif any(not isinstance(size, int) or size <= 0 for size in self.volume_sizes):
                errors.append("`volume_sizes` entries must be positive integers.")

        for field_name in ("concurrency_limit", "analysis_workers"):
            value = getattr(self, field_name)
            if value is not None and (not isinstance(value, int) or value <= 0):
                errors.append(f"`{field_name}` must be a positive integer.")
        if not isinstance(self.cover_scan_depth, int) or self.cover_scan_depth <= 0:
            errors.append("`cover_scan_depth` must be a positive integer.")

        if not isinstance(self.volume_separator, str):
            errors.append("`volume_separator` must be a string.")

        for field_name in ("chapter_comparator", "page_comparator"):
            value = getattr(self, field_name)
            if value is not None and not isinstance(value, PathComparator):
                errors.append(f"`{field_name}` must provide a `compare(a, b)` method.")

        if self.metadata is not None and normalize_optional_string(self.metadata.title) is None:
            errors.append("`title` must be a non-empty string.")

        if self.target_path is not None and Path(self.target_path).is_file():
            errors.append(f"`target_path` points to a file: {self.target_path}")

        if errors:
            raise ConfigurationError(errors, hint="Fix the listed configuration values.")

        return CompiledPatterns(
            chapter_regex=chapter_regex,
            page_regex=page_regex,
            name_regex=name_regex,
            chapter_comparator=self.chapter_comparator or NaturalOrder(chapter_regex),
            page_comparator=self.page_comparator or NaturalOrder(page_regex),
        )

    def resolved_metadata(self) -> SeriesMetadata:
        """Return configured metadata, deriving a title from the source when absent."""

        if self.metadata is not None:
            return self.metadata
        if self.source_path is not None and Path(self.source_path).name:
            return SeriesMetadata.with_title(Path(self.source_path).name)
        return SeriesMetadata.with_title(DEFAULT_TITLE)

    @staticmethod
    def _compile(
        pattern: str | None,
        field_name: str,
        default: re.Pattern[str],
        errors: list[str],
    ) -> re.Pattern[str]:
        if pattern is None:
            return default
        try:
            return re.compile(pattern)
        except re.error as exc:
            errors.append(f"`{field_name}` is not a valid regular expression: {exc}.")
            return default


class ConfigLoader:
    """Factory methods for creating `PagebinderConfig` from external sources."""

    _REQUIRED_YAML_KEYS = frozenset({"source_path"})
    _METADATA_KEYS = frozenset(
        {
            "title",
            "series",
            "authors",
            "publisher",
            "description",
            "tags",
            "language",
            "rights",
            "identifier",
            "genre",
            "web",
            "custom_fields",
        }
    )
    _SUPPORTED_YAML_KEYS = frozenset(
        {
            "source_path",
            "target_path",
            "collection_depth",
            "grouping_strategy",
            "chapter_name_regex",
            "page_name_regex",
            "name_grouping_regex",
            "image_analysis_sensibility",
            "volume_sizes",
            "volume_separator",
            "create_output_directory",
            "concurrency_limit",
            "analysis_workers",
            "cover_scan_depth",
            "extra",
        }
    ) | _METADATA_KEYS

    @staticmethod
    def from_yaml(path: Path, *, require_source: bool = True) -> PagebinderConfig:
        """Create a validated config from a YAML file.

        `require_source=False` lets callers supply the source path separately.
        """

        path_text = Path(path).read_text(encoding="utf-8")
        payload = ConfigLoader._parse_yaml_payload(path_text, Path(path))
        return ConfigLoader.from_mapping(
            payload,
            source_label=f"YAML `{path}`",
            require_source=require_source,
        )

    @staticmethod
    def from_mapping(
        payload: Mapping[str, Any],
        source_label: str = "Configuration",
        *,
        require_source: bool = True,
    ) -> PagebinderConfig:
        """Build a validated config from a plain mapping."""

        ConfigLoader._validate_yaml_keys(payload, source_label, require_source=require_source)
        errors: list[str] = []

        def read(parse: Callable[[], _Parsed], default: _Parsed) -> _Parsed:
            try:
                return parse()
            except ValueError as exc:
                errors.append(str(exc))
                return default

        source_path = ConfigLoader._optional_path(payload, "source_path")
        target_path = ConfigLoader._optional_path(payload, "target_path")
        collection_depth = read(
            lambda: parse_collection_depth(payload.get("collection_depth"), "collection_depth"),
            CollectionDepth.DEEP,
        )
        grouping_strategy = read(
            lambda: parse_grouping_strategy(payload.get("grouping_strategy"), "grouping_strategy"),
            None,
        )
        sensibility = read(
            lambda: ConfigLoader._optional_bounded_int(
                payload, "image_analysis_sensibility", source_label, DEFAULT_SENSIBILITY, 0, 100
            ),
            DEFAULT_SENSIBILITY,
        )
        volume_sizes = read(
            lambda: parse_volume_sizes(payload.get("volume_sizes"), "volume_sizes"),
            None,
        )
        create_output_directory = read(
            lambda: ConfigLoader._optional_boolean(
                payload, "create_output_directory", source_label, default=True
            ),
            True,
        )
        concurrency_limit = read(
            lambda: ConfigLoader._optional_bounded_int(
                payload, "concurrency_limit", source_label, None, 1, None
            ),
            None,
        )
        analysis_workers = read(
            lambda: ConfigLoader._optional_bounded_int(
                payload, "analysis_workers", source_label, None, 1, None
            ),
            None,
        )
        cover_scan_depth = read(
            lambda: ConfigLoader._optional_bounded_int(
                payload, "cover_scan_depth", source_label, 1, 1, None
            ),
            1,
        )
        metadata = read(lambda: ConfigLoader._metadata_from_mapping(payload, source_label), None)
        extra = read(lambda: ConfigLoader._optional_string_map(payload, "extra", source_label), {})

        separator = payload.get("volume_separator", DEFAULT_VOLUME_SEPARATOR)
        if separator is None:
            separator = DEFAULT_VOLUME_SEPARATOR

        if errors:
            raise ConfigurationError(errors, hint=f"Fix the listed values in {source_label}.")

        config = PagebinderConfig(
            source_path=source_path,
            target_path=target_path,
            metadata=metadata,
            collection_depth=collection_depth,
            grouping_strategy=grouping_strategy,
            chapter_name_regex=ConfigLoader._optional_raw_string(payload, "chapter_name_regex"),
            page_name_regex=ConfigLoader._optional_raw_string(payload, "page_name_regex"),
            name_grouping_regex=ConfigLoader._optional_raw_string(payload, "name_grouping_regex"),
            image_analysis_sensibility=sensibility,
            volume_sizes=volume_sizes,
            volume_separator=str(separator),
            create_output_directory=create_output_directory,
            concurrency_limit=concurrency_limit,
            analysis_workers=analysis_workers,
            cover_scan_depth=cover_scan_depth,
            extra=extra,
        )
        config.validate()
        return config

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> PagebinderConfig:
        """Create a validated config from `PAGEBINDER_*` environment variables."""

        env_map: Mapping[str, str] = os.environ if env is None else env
        if ConfigLoader._optional_env_string(env_map, "PAGEBINDER_SOURCE_PATH") is None:
            raise ConfigurationError(
                ["Environment variable `PAGEBINDER_SOURCE_PATH` is required."],
                hint="Export PAGEBINDER_SOURCE_PATH or pass the source on the command line.",
            )

        payload: dict[str, Any] = {}
        for key in sorted(ConfigLoader._SUPPORTED_YAML_KEYS - {"custom_fields", "extra"}):
            value = ConfigLoader._optional_env_string(env_map, f"PAGEBINDER_{key.upper()}")
            if value is not None:
                payload[key] = value
        if "authors" in payload:
            payload["authors"] = [part for part in payload["authors"].split(",")]
        if "tags" in payload:
            payload["tags"] = [part for part in payload["tags"].split(",")]
        separator = env_map.get("PAGEBINDER_VOLUME_SEPARATOR")
        if separator is not None and separator != "":
            payload["volume_separator"] = separator
        return ConfigLoader.from_mapping(payload, source_label="Environment")

    @staticmethod
    def _parse_yaml_payload(raw_text: str, path: Path) -> Mapping[str, Any]:
        """Parse YAML text and enforce a mapping root payload."""

        try:
            payload = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            raise ConfigurationError([f"YAML config `{path}` is not valid YAML: {exc}"]) from exc

        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ConfigurationError(
                [f"YAML config `{path}` must contain a top-level mapping/object."]
            )
        return payload

    @staticmethod
    def _validate_yaml_keys(
        payload: Mapping[str, Any],
        source_label: str,
        *,
        require_source: bool,
    ) -> None:
        """Validate supported and required keys."""

        errors: list[str] = []
        unknown = sorted(str(key) for key in set(payload).difference(ConfigLoader._SUPPORTED_YAML_KEYS))
        if unknown:
            errors.append(f"{source_label} includes unsupported key(s): {', '.join(unknown)}.")

        required = ConfigLoader._REQUIRED_YAML_KEYS if require_source else frozenset()
        missing = sorted(
            key for key in required if normalize_optional_string(payload.get(key)) is None
        )
        if missing:
            errors.append(f"{source_label} is missing required key(s): {', '.join(missing)}.")
        if errors:
            raise ConfigurationError(errors)

    @staticmethod
    def _metadata_from_mapping(
        payload: Mapping[str, Any], source_label: str
    ) -> SeriesMetadata | None:
        """Build series metadata from top-level keys, or `None` when no title is set."""

        title = normalize_optional_string(payload.get("title"))
        if title is None:
            if any(key in payload for key in ConfigLoader._METADATA_KEYS - {"title"}):
                source_path = normalize_optional_string(payload.get("source_path"))
                title = Path(source_path).name if source_path else DEFAULT_TITLE
            else:
                return None

        return SeriesMetadata(
            title=title,
            series=normalize_optional_string(payload.get("series")),
            authors=ConfigLoader._optional_string_list(payload, "authors", source_label),
            publisher=normalize_optional_string(payload.get("publisher")),
            description=normalize_optional_string(payload.get("description")),
            tags=ConfigLoader._optional_string_list(payload, "tags", source_label),
            language=normalize_optional_string(payload.get("language")) or "en",
            rights=normalize_optional_string(payload.get("rights")),
            identifier=normalize_optional_string(payload.get("identifier")),
            genre=normalize_optional_string(payload.get("genre")),
            web=normalize_optional_string(payload.get("web")),
            custom_fields=ConfigLoader._optional_string_map(payload, "custom_fields", source_label),
        )

    @staticmethod
    def _optional_path(payload: Mapping[str, Any], key: str) -> Path | None:
        value = normalize_optional_string(payload.get(key))
        return Path(value) if value is not None else None

    @staticmethod
    def _optional_raw_string(payload: Mapping[str, Any], key: str) -> str | None:
        """Read a string field without trimming, keeping regex whitespace intact."""

        value = payload.get(key)
        if value is None or str(value) == "":
            return None
        return str(value)

    @staticmethod
    def _optional_bounded_int(
        payload: Mapping[str, Any],
        key: str,
        source_label: str,
        default: int | None,
        minimum: int,
        maximum: int | None,
    ) -> int | None:
        """Read and validate an integer payload field within inclusive bounds."""

        if key not in payload:
            return default

        raw_value = payload[key]
        if maximum is None:
            message = f"{source_label} field `{key}` must be an integer >= {minimum}."
        else:
            message = f"{source_label} field `{key}` must be an integer between {minimum} and {maximum}."
        if isinstance(raw_value, bool):
            raise ValueError(message)
        if isinstance(raw_value, int):
            parsed = raw_value
        else:
            normalized = normalize_optional_string(raw_value)
            if normalized is None:
                return default
            try:
                parsed = int(normalized)
            except ValueError as exc:
                raise ValueError(message) from exc

        if parsed < minimum or (maximum is not None and parsed > maximum):
            raise ValueError(message)
        return parsed

    @staticmethod
    def _optional_boolean(
        payload: Mapping[str, Any], key: str, source_label: str, default: bool
    ) -> bool:
        """Read and validate a boolean field from a payload."""

        if key not in payload:
            return default

        parsed = parse_permissive_boolean(payload[key])
        if parsed is None:
            raise ValueError(
                f"{source_label} field `{key}` must be a boolean value "
                "(`true`/`false`, `1`/`0`, `yes`/`no`)."
            )
        return parsed

    @staticmethod
    def _optional_string_list(
        payload: Mapping[str, Any], key: str, source_label: str
    ) -> tuple[str, ...]:
        """Read an optional list of strings; a single string becomes a one-item list."""

        raw = payload.get(key)
        if raw is None:
            return ()
        if isinstance(raw, str):
            raw = [raw]
        if not isinstance(raw, (list, tuple)):
            raise ValueError(f"{source_label} field `{key}` must be a list of strings.")
        values = [normalize_optional_string(item) for item in raw]
        return tuple(value for value in values if value is not None)

    @staticmethod
    def _optional_string_map(
        payload: Mapping[str, Any], key: str, source_label: str
    ) -> dict[str, str]:
        """Read an optional mapping with non-empty string keys and values."""

        if key not in payload:
            return {}

        raw = payload[key]
        if raw is None:
            return {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"{source_label} field `{key}` must be a mapping/object.")

        normalized: dict[str, str] = {}
        for raw_key, raw_value in raw.items():
            key_value = normalize_optional_string(raw_key)
            value_value = normalize_optional_string(raw_value)
            if key_value is None:
                raise ValueError(f"{source_label} field `{key}` contains a blank key.")
            if value_value is None:
                raise ValueError(
                    f"{source_label} field `{key}` contains blank value for `{key_value}`."
                )
            normalized[key_value] = value_value
        return normalized

    @staticmethod
    def _optional_env_string(env: Mapping[str, str], key: str) -> str | None:
        """Read and normalize optional string environment variable values."""

        if key not in env:
            return None
        return normalize_optional_string(env.get(key))
