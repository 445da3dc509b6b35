"""
Export pipeline: connect, fetch, project, write, disconnect.

Single-endpoint exports write one new file per resource kind. Multi-geo
exports walk the admin centers in order and append every region to one
shared file, tagging each row with its region. Endpoints are processed
strictly one after another; each produces an EndpointResult, and the
FailurePolicy decides whether the first failure ends the run.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from .attributes import load_attributes
from .collectors.base import BaseCollector
from .config import REGION_COLUMN, ExportConfig
from .endpoints import EndpointDescriptor
from .errors import ExportError, SinkWriteError
from .projection import project
from .sink import APPEND, CREATE, CsvSink

logger = logging.getLogger("m365_export.pipeline")


class FailurePolicy(enum.Enum):
    ABORT = "abort"          # First failed endpoint ends the run
    CONTINUE = "continue"    # Record the failure and move to the next endpoint


@dataclass(frozen=True)
class RunContext:
    """Everything a stage needs to know about the current run."""
    output_dir: Path
    config_dir: Path
    timestamp: str
    strict: bool = False
    failure_policy: FailurePolicy = FailurePolicy.ABORT
    overwrite: bool = False

    @classmethod
    def from_config(cls, config: ExportConfig) -> "RunContext":
        return cls(
            output_dir=config.output.output_dir,
            config_dir=Path(config.output.config_dir),
            timestamp=config.output.resolve_timestamp(),
            strict=config.strict,
            failure_policy=(
                FailurePolicy.CONTINUE if config.continue_on_error else FailurePolicy.ABORT
            ),
            overwrite=config.output.overwrite,
        )

    def output_path(self, service: str, kind: str) -> Path:
        return self.output_dir / f"{service}_{kind} {self.timestamp}.csv"

    def attribute_table(self, service: str, kind: str) -> Path:
        return self.config_dir / f"{service}_{kind}.csv"


@dataclass
class EndpointResult:
    """Outcome of exporting one resource kind from one endpoint."""
    endpoint: Optional[EndpointDescriptor]
    rows_written: int = 0
    error: Optional[Exception] = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ExportResult:
    """Outcome of exporting one resource kind."""
    service: str
    resource_kind: str
    path: Path
    endpoint_results: list[EndpointResult] = field(default_factory=list)

    @property
    def rows_written(self) -> int:
        return sum(r.rows_written for r in self.endpoint_results)

    @property
    def failures(self) -> list[EndpointResult]:
        return [r for r in self.endpoint_results if not r.ok]

    @property
    def ok(self) -> bool:
        return not self.failures


async def _export_endpoint(
    collector: BaseCollector,
    kind: str,
    ctx: RunContext,
    attributes: Sequence[str],
    sink: CsvSink,
    endpoint: Optional[EndpointDescriptor],
    enrichment: Optional[dict],
) -> EndpointResult:
    result = EndpointResult(endpoint=endpoint)
    started = time.time()
    try:
        async with collector.connect(endpoint) as client:
            with sink:
                async for record in collector.fetch(client, kind, attributes, endpoint):
                    sink.write(project(record, attributes, enrichment, strict=ctx.strict))
    except ExportError as e:
        result.error = e
    finally:
        result.duration_seconds = round(time.time() - started, 2)
        result.rows_written = sink.rows_written
    return result


def _resolve_attributes(
    collector: BaseCollector,
    kind: str,
    ctx: RunContext,
    attributes: Optional[Sequence[str]],
) -> list[str]:
    if attributes is None:
        return load_attributes(ctx.attribute_table(collector.name, kind))
    return list(attributes)


async def export_resource(
    collector: BaseCollector,
    kind: str,
    ctx: RunContext,
    attributes: Optional[Sequence[str]] = None,
    endpoint: Optional[EndpointDescriptor] = None,
) -> ExportResult:
    """Export one resource kind from one endpoint into a new file."""
    collector.query_for(kind)
    attributes = _resolve_attributes(collector, kind, ctx, attributes)
    path = ctx.output_path(collector.name, kind)
    logger.info(f"Exporting {collector.name} {kind} to {path}")

    sink = CsvSink(path, attributes, mode=CREATE, overwrite=ctx.overwrite)
    endpoint_result = await _export_endpoint(
        collector, kind, ctx, attributes, sink, endpoint, enrichment=None
    )
    export = ExportResult(collector.name, kind, path, [endpoint_result])
    if endpoint_result.error is not None:
        logger.error(f"Export of {collector.name} {kind} failed: {endpoint_result.error}")
        raise endpoint_result.error

    logger.info(
        f"Exported {export.rows_written} {kind} row(s) in "
        f"{endpoint_result.duration_seconds}s to {path}"
    )
    return export


async def export_multi_geo(
    collector: BaseCollector,
    kind: str,
    ctx: RunContext,
    endpoints: Sequence[EndpointDescriptor],
    attributes: Optional[Sequence[str]] = None,
) -> ExportResult:
    """
    Export one resource kind from every admin center into one shared file.
    Rows carry the endpoint's region in the Multi Geo Location column.
    """
    collector.query_for(kind)
    attributes = _resolve_attributes(collector, kind, ctx, attributes)
    fieldnames = [*attributes, REGION_COLUMN]
    path = ctx.output_path(collector.name, kind)
    export = ExportResult(collector.name, kind, path)

    if path.exists():
        if not ctx.overwrite:
            logger.error(f"Refusing to overwrite existing file {path}")
            raise SinkWriteError(f"Refusing to overwrite existing file {path}")
        try:
            path.unlink()
        except OSError as e:
            raise SinkWriteError(f"Cannot replace {path}: {e}") from e

    logger.info(f"Exporting {collector.name} {kind} from {len(endpoints)} admin center(s) to {path}")
    for index, endpoint in enumerate(endpoints, start=1):
        logger.info(f"[{index}/{len(endpoints)}] {endpoint.url} ({endpoint.region_tag})")
        sink = CsvSink(path, fieldnames, mode=APPEND)
        endpoint_result = await _export_endpoint(
            collector, kind, ctx, attributes, sink, endpoint,
            enrichment={REGION_COLUMN: endpoint.region_tag},
        )
        export.endpoint_results.append(endpoint_result)

        if endpoint_result.ok:
            logger.info(f"{endpoint.url}: {endpoint_result.rows_written} row(s)")
            continue

        logger.error(f"{endpoint.url} failed: {endpoint_result.error}")
        if ctx.failure_policy is FailurePolicy.ABORT:
            raise endpoint_result.error

    if export.failures:
        logger.warning(
            f"{len(export.failures)}/{len(endpoints)} admin center(s) failed for {kind}"
        )
    logger.info(f"Exported {export.rows_written} {kind} row(s) to {path}")
    return export


async def run_exports(
    collector: BaseCollector,
    kinds: Sequence[str],
    ctx: RunContext,
    endpoints: Optional[Sequence[EndpointDescriptor]] = None,
    multi_geo: bool = False,
) -> list[ExportResult]:
    """Export each requested resource kind in turn."""
    results = []
    for kind in kinds:
        if multi_geo:
            results.append(await export_multi_geo(collector, kind, ctx, endpoints or []))
        else:
            endpoint = endpoints[0] if endpoints else None
            results.append(await export_resource(collector, kind, ctx, endpoint=endpoint))
    return results
