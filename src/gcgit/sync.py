"""Sync driver: pull remote objects into an instance and report drift."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .modules import ContentTypeDefinition, Module, ModuleRegistry
from .object_store.drift import DriftReport, compare_collections
from .object_store.git_manager import GitManager
from .object_store.serializer import ObjectParseError, load_object_file
from .object_store.store import InstanceStore
from .pull_engine.client import ModuleClient
from .pull_engine.engine import PullEngine, PullError
from .utils.logging_config import timed

logger = logging.getLogger(__name__)


@dataclass
class PullSummary:
    """Outcome of pulling one module."""
    module: str
    pulled: dict[str, int] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
    written: list[str] = field(default_factory=list)
    changed: list[str] = field(default_factory=list)
    commit: Optional[str] = None

    @property
    def total(self) -> int:
        return sum(self.pulled.values())

    def summary(self) -> str:
        lines = [f"{self.module}: pulled {self.total} objects"]
        for content_type, count in self.pulled.items():
            lines.append(f"  {content_type:25s} {count}")
        for content_type, reason in self.failures.items():
            lines.append(f"  {content_type:25s} FAILED: {reason}")
        if self.commit:
            lines.append(f"Committed {len(self.changed)} changed files ({self.commit[:8]})")
        elif self.written:
            lines.append("No changes detected")
        return "\n".join(lines)


def commit_message(paths: list[str], module_name: str) -> str:
    """Auto-commit message naming the changed objects."""
    names = [Path(path).stem for path in paths]
    if len(names) <= 3:
        return f"Auto-commit: Updated {', '.join(names)} from {module_name}"
    return f"Auto-commit: Updated {len(names)} files from {module_name} ({names[0]}, {names[1]}, ...)"


class SyncDriver:
    """Runs pull, diff and endpoint tests for one module of one instance.

    Content types are processed one after another; a content type whose
    pull fails is recorded and the others carry on.
    """

    def __init__(
        self,
        instance_dir: Path,
        module: Module,
        client: ModuleClient,
        store: Optional[InstanceStore] = None,
        git: Optional[GitManager] = None,
        content_types: Optional[list[ContentTypeDefinition]] = None,
    ):
        self.instance_dir = instance_dir
        self.instance_name = instance_dir.name
        self.module = module
        self.engine = PullEngine(client)
        self.store = store or InstanceStore(instance_dir)
        self.git = git or GitManager(instance_dir)
        self.content_types = content_types or list(module.content_types)

    @timed("sync_pull")
    async def pull(self) -> PullSummary:
        """Pull every content type, write the files and commit what changed."""
        summary = PullSummary(module=self.module.id)
        for definition in self.content_types:
            try:
                objects = await self.engine.pull(definition)
            except PullError as e:
                logger.warning(str(e))
                summary.failures[definition.name] = e.reason
                continue
            paths = self.store.write_objects(self.module.id, objects)
            summary.pulled[definition.name] = len(objects)
            summary.written.extend(self.store.relative(path) for path in paths)

        if not summary.written:
            return summary

        self.git.add_files(summary.written)
        summary.changed = self.git.staged_changes(summary.written)
        if not summary.changed:
            logger.info(f"{self.module.id}: no changes detected")
            return summary

        summary.commit = self.git.commit(commit_message(summary.changed, self.module.name), summary.changed)
        return summary

    @timed("sync_diff")
    async def diff(self) -> DriftReport:
        """Compare local object files with a fresh pull, without writing anything."""
        report = DriftReport(
            instance=self.instance_name,
            module=self.module.id,
            checked_at=datetime.now(timezone.utc),
        )
        for definition in self.content_types:
            local = self.store.load_objects(self.module.id, definition.name)
            try:
                remote = await self.engine.pull(definition)
            except PullError as e:
                logger.warning(str(e))
                report.failed[definition.name] = e.reason
                continue
            report.compared[definition.name] = len(remote)
            report.items.extend(compare_collections(definition.name, local, remote, definition.id_field))
        return report

    async def test_endpoints(self) -> dict[str, tuple[bool, str]]:
        """Pull each content type once and report whether it worked."""
        results: dict[str, tuple[bool, str]] = {}
        for definition in self.content_types:
            try:
                objects = await self.engine.pull(definition)
            except PullError as e:
                results[definition.name] = (False, e.reason)
                continue
            results[definition.name] = (True, f"{len(objects)} objects")
        return results


def validate_object_files(files: list[Path], registry: ModuleRegistry) -> dict[Path, Optional[str]]:
    """Check that object files parse and name a known content type.

    Returns:
        Mapping of file to None when valid, else the problem found
    """
    known = {
        definition.name
        for module in registry.all_modules()
        for definition in module.content_types
    }
    results: dict[Path, Optional[str]] = {}
    for path in files:
        try:
            obj = load_object_file(path)
        except ObjectParseError as e:
            results[path] = str(e)
            continue
        if obj.content_type not in known:
            results[path] = f"Unknown content type '{obj.content_type}'"
        else:
            results[path] = None
    return results
