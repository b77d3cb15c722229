"""Pipeline orchestration for the reconstruction and cascade passes."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .config import DEFAULT_MAX_ITERATIONS, DEFAULT_REQUEST_TIMEOUT, ConfigError, ModreconConfig, load_config
from .http import Fetcher, HttpFetcher
from .logging import get_logger
from .models import AliasMapping, CascadeResult, MissingExportInfo, ReconstructedIndex, ReconstructionResult
from .observer import Observer, WarningRecorder
from .resolvers.cascade import resolve_missing_dynamic_imports, update_manifest_with_resolved_files
from .resolvers.exports import generate_export_statement, resolve_missing_exports, resolved_names
from .resolvers.index import (
    generate_alias_target_indexes,
    reconstruct_all_indexes,
    render_index_content,
    write_index,
)
from .scanner import scan_source_files


@dataclass
class ReconstructionReport:
    """Result of :meth:`Orchestrator.run_reconstruction`."""

    root: Path
    result: ReconstructionResult
    usage_resolutions: Dict[str, List[MissingExportInfo]] = field(default_factory=dict)
    generated_alias_indexes: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class Orchestrator:
    """Runs the module reconstruction passes over a recovered source tree."""

    def __init__(
        self,
        observer: Observer | None = None,
        fetcher: Optional[Fetcher] = None,
    ) -> None:
        self.observer = observer or Observer()
        self.fetcher = fetcher
        self.logger = get_logger("orchestrator")

    def run_reconstruction(
        self, path: str | Path, *, aliases: Optional[Sequence[AliasMapping]] = None
    ) -> ReconstructionReport:
        """Regenerate incomplete indexes under ``path`` and fill alias targets."""
        root = Path(path).expanduser().resolve()
        self.logger.info("Starting reconstruction run for %s", root)
        config = load_config(root)
        alias_mappings = list(aliases) if aliases is not None else list(config.aliases)

        sources = scan_source_files(root, exclude_paths=config.exclude_paths)
        self.logger.debug("Scanner discovered %d source files", len(sources))

        recorder = WarningRecorder(self.observer)
        result = reconstruct_all_indexes(root, sources, alias_mappings, observer=recorder, write=False)
        report = ReconstructionReport(root=root, result=result)

        for index in result.indexes:
            mapping = self._alias_for_directory(root, index.index_path.parent, alias_mappings)
            if mapping is None or not index.unresolved_exports:
                continue
            infos = self._resolve_from_usage(index, mapping, recorder)
            if infos:
                report.usage_resolutions[index.module_path] = infos
            provided = len(resolved_names(infos))
            result.total_resolved += provided
            result.total_unresolved -= provided

        for index in result.indexes:
            try:
                write_index(index)
            except OSError as exc:
                recorder.warning(f"Failed to write {index.index_path}: {exc}")
                continue
            self.logger.info("Updated %s", index.index_path)

        if alias_mappings:
            report.generated_alias_indexes = generate_alias_target_indexes(
                root, alias_mappings, observer=recorder
            )

        report.warnings = recorder.warnings
        self.logger.info(
            "Reconstruction finished: %d indexes updated, %d resolved, %d unresolved, %d alias indexes",
            len(result.indexes),
            result.total_resolved,
            result.total_unresolved,
            len(report.generated_alias_indexes),
        )
        return report

    def run_cascade(
        self,
        path: str | Path,
        *,
        bundles_dir: Optional[str | Path] = None,
        static_dir: Optional[str | Path] = None,
        base_url: Optional[str] = None,
        max_iterations: Optional[int] = None,
    ) -> CascadeResult:
        """Materialize missing dynamic imports using the ``cascade`` config section.

        Explicit arguments take precedence over configured values.
        """
        root = Path(path).expanduser().resolve()
        config = load_config(root)
        settings = self._cascade_settings(config, bundles_dir, static_dir, base_url, max_iterations)
        bundles, statics, url, iterations, timeout = settings
        self.logger.info("Starting dynamic import cascade in %s", bundles)

        fetcher = self.fetcher or HttpFetcher(timeout=timeout)
        result = resolve_missing_dynamic_imports(
            bundles,
            statics,
            url,
            iterations,
            fetcher=fetcher,
            observer=self.observer,
        )

        manifest = config.cascade.manifest if config.cascade else None
        if manifest is not None and result.resolved_files:
            if not update_manifest_with_resolved_files(manifest, result.resolved_files, observer=self.observer):
                result.errors.append(f"Failed to update manifest {manifest}")

        self.logger.info(
            "Cascade finished after %d iteration(s): %d fetched, %d copied, %d failed",
            result.iterations,
            result.fetched_files,
            result.copied_files,
            result.failed_files,
        )
        return result

    def _cascade_settings(
        self,
        config: ModreconConfig,
        bundles_dir: Optional[str | Path],
        static_dir: Optional[str | Path],
        base_url: Optional[str],
        max_iterations: Optional[int],
    ) -> tuple[Path, Optional[Path], Optional[str], int, float]:
        cascade = config.cascade
        bundles = Path(bundles_dir) if bundles_dir is not None else (cascade.bundles_dir if cascade else None)
        if bundles is None:
            raise ConfigError("cascade.bundles_dir is not configured")
        statics = Path(static_dir) if static_dir is not None else (cascade.static_dir if cascade else None)
        url = base_url if base_url is not None else (cascade.base_url if cascade else None)
        if max_iterations is None:
            max_iterations = cascade.max_iterations if cascade else DEFAULT_MAX_ITERATIONS
        timeout = cascade.request_timeout if cascade else DEFAULT_REQUEST_TIMEOUT
        return bundles, statics, url, max_iterations, timeout

    @staticmethod
    def _alias_for_directory(
        root: Path, directory: Path, aliases: Sequence[AliasMapping]
    ) -> Optional[AliasMapping]:
        for mapping in aliases:
            target = Path(os.path.normpath(root / mapping.normalized_path))
            if target == directory:
                return mapping
        return None

    def _resolve_from_usage(
        self, index: ReconstructedIndex, mapping: AliasMapping, observer: Observer
    ) -> List[MissingExportInfo]:
        module_dir = index.index_path.parent
        consumers: List[str] = []
        for name in index.unresolved_exports:
            for consumer in index.importers.get(name, []):
                if consumer not in consumers:
                    consumers.append(consumer)

        self.logger.debug(
            "Resolving %d unresolved exports of %s from consumer usage",
            len(index.unresolved_exports),
            mapping.alias,
        )
        infos = resolve_missing_exports(
            module_dir,
            index.unresolved_exports,
            consumers,
            mapping.alias,
            observer=observer,
        )
        provided = resolved_names(infos)
        if not provided:
            return infos

        statements = [
            generate_export_statement(info, package_root=module_dir, index_dir=module_dir)
            for info in infos
            if info.export_name in provided
        ]
        index.unresolved_exports = [name for name in index.unresolved_exports if name not in provided]
        index.generated_content = render_index_content(
            index.existing_content,
            index.resolved_exports,
            index.unresolved_exports,
            statements,
        )
        return infos


__all__ = ["Orchestrator", "ReconstructionReport"]
