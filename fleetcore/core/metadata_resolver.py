"""Resolve metadata sources and pick legal images and agent tools.

Sources are consulted in priority order and the first source that yields
at least one match wins; results are never merged across sources.  This
lets an environment's control bucket override the public catalog.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from typing import Any
from urllib.parse import urlsplit

from pydantic import ValidationError

from fleetcore.backends.base import IndexFetcher
from fleetcore.core.errors import NoMatchingImages, NoMatchingTools
from fleetcore.core.retry import DEFAULT_POLICY, Deadline, RetryPolicy, call_external
from fleetcore.core.storage import Storage
from fleetcore.models.config import EnvironmentConfig
from fleetcore.models.metadata import ImageSpec, LookupParams, MetadataSource, ToolsSpec

logger = logging.getLogger(__name__)

INDEX_NAME = "index.json"
IMAGES_PATH = "images"
TOOLS_PATH = "tools"


def _is_absolute_url(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if not parts.scheme:
        return False
    # file:// URLs have no host but a path
    return bool(parts.netloc) or (parts.scheme == "file" and bool(parts.path))


def image_sources(env: EnvironmentConfig, storage: Storage) -> list[MetadataSource]:
    """Image metadata sources: control bucket first, then the public default.

    The control-bucket source is dropped when its URL does not parse.
    """
    sources: list[MetadataSource] = []
    control_url = storage.base_url
    if _is_absolute_url(control_url):
        sources.append(
            MetadataSource(
                description=f"control bucket {env.control_bucket}",
                base_url=control_url,
                priority=0,
            )
        )
    else:
        logger.debug("Dropping control-bucket image source %r: not a URL", control_url)
    sources.append(
        MetadataSource(
            description="default public images",
            base_url=env.image_metadata_url.rstrip("/") + "/",
            priority=10,
        )
    )
    return sources


def tools_sources(env: EnvironmentConfig, storage: Storage) -> list[MetadataSource]:
    """Tools metadata sources: the control bucket's ``tools`` directory."""
    return [
        MetadataSource(
            description=f"control bucket {env.control_bucket} tools",
            base_url=storage.base_url.rstrip("/") + "/" + TOOLS_PATH,
            priority=0,
        )
    ]


def _load_products(raw: bytes, url: str) -> list[dict[str, Any]]:
    try:
        doc = json.loads(raw)
    except ValueError:
        logger.warning("Ignoring unparseable metadata index at %s", url)
        return []
    products = doc.get("products") if isinstance(doc, dict) else None
    if not isinstance(products, list):
        logger.warning("Ignoring metadata index without products at %s", url)
        return []
    return [p for p in products if isinstance(p, dict)]


def _parse_each(model: type, products: list[dict[str, Any]], url: str) -> list[Any]:
    parsed = []
    for product in products:
        try:
            parsed.append(model.model_validate(product))
        except ValidationError:
            logger.debug("Skipping malformed product %r at %s", product, url)
    return parsed


def _version_key(version: str) -> tuple:
    # numeric parts sort above textual ones: 1.2.0 > 1.2.beta1
    return tuple(
        (1, int(p), "") if p.isdigit() else (0, 0, p)
        for p in version.replace("-", ".").split(".")
    )


class MetadataResolver:
    """Validate candidate images and tools against a request.

    Parameters
    ----------
    fetcher:
        Fetches an index document by URL.
    policy:
        Retry policy for index fetches.
    """

    def __init__(self, fetcher: IndexFetcher, policy: RetryPolicy = DEFAULT_POLICY) -> None:
        self._fetcher = fetcher
        self._policy = policy

    def _first_match(
        self,
        sources: Sequence[MetadataSource],
        path: str,
        model: type,
        predicate: Callable[[Any], bool],
        deadline: Deadline | None,
    ) -> tuple[MetadataSource, list[Any]] | None:
        for source in sorted(sources, key=lambda s: s.priority):
            url = source.url(f"{path}/{INDEX_NAME}" if path else INDEX_NAME)
            raw = call_external(
                self._fetcher.fetch, url,
                deadline=deadline, policy=self._policy, what=f"fetch {url}",
            )
            if raw is None:
                continue
            matches = [
                item for item in _parse_each(model, _load_products(raw, url), url)
                if predicate(item)
            ]
            if matches:
                logger.debug("%d matches from %s", len(matches), source.description)
                return source, matches
        return None

    def validate(self, params: LookupParams, deadline: Deadline | None = None) -> list[str]:
        """Return the sorted, de-duplicated ids of matching images.

        Raises
        ------
        NoMatchingImages
            If no source yields an image for the series (and arch).
        """

        def _matches(image: ImageSpec) -> bool:
            return (
                image.series == params.series
                and (params.arch is None or image.arch == params.arch)
                and image.region == params.region
                and (image.endpoint is None or image.endpoint == params.endpoint)
            )

        found = self._first_match(params.sources, IMAGES_PATH, ImageSpec, _matches, deadline)
        if found is None:
            raise NoMatchingImages(
                f"no images for series {params.series!r}, arch {params.arch or 'any'!r} "
                f"in region {params.region!r} from {len(params.sources)} sources"
            )
        return sorted({image.id for image in found[1]})

    def find_tools(
        self,
        series: str,
        arch: str | None,
        sources: Sequence[MetadataSource],
        version: str | None = None,
        deadline: Deadline | None = None,
    ) -> list[ToolsSpec]:
        """Return matching tools, newest version first.

        Raises
        ------
        NoMatchingTools
            If no source yields tools for the series (and arch, version).
        """

        def _matches(tools: ToolsSpec) -> bool:
            return (
                tools.series == series
                and (arch is None or tools.arch == arch)
                and (version is None or tools.version == version)
            )

        found = self._first_match(sources, "", ToolsSpec, _matches, deadline)
        if found is None:
            raise NoMatchingTools(
                f"no tools for series {series!r}, arch {arch or 'any'!r}"
                + (f", version {version!r}" if version else "")
            )
        unique = {t.binary_version: t for t in found[1]}
        return sorted(
            unique.values(),
            key=lambda t: (_version_key(t.version), t.arch),
            reverse=True,
        )
