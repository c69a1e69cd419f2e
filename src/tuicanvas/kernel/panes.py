"""Scoped ownership, reuse and cleanup of canvas panes.

Each scope tracks at most one owned pane. The tracking record says which pane
a scope believes it owns; the ownership tag written on the pane itself is the
authority when the two disagree. Mutations of the record (create, reclaim,
clear) happen while holding the store's per-scope lock.
"""
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from ..contracts.v1.canvas import CleanupResult, KnownPane, OrphanedPane, PaneStatus
from ..runners.base import PaneBackend
from .pane_store import PaneStore
from .scope import ScopeIdentity, compute_scope

logger = logging.getLogger("tuicanvas.panes")

OWNER_TAG = "@canvas-owner"

# Substrings identifying canvas processes started before panes were tagged.
DEFAULT_LEGACY_MARKERS: Tuple[str, ...] = ("/canvases/", "tuicanvas.canvas")


class PaneManager:
    def __init__(
        self,
        backend: PaneBackend,
        store: PaneStore,
        *,
        scope: Optional[ScopeIdentity] = None,
        split_percent: int = 67,
        interrupt_grace_s: float = 0.2,
        legacy_markers: Sequence[str] = DEFAULT_LEGACY_MARKERS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.backend = backend
        self.store = store
        self.scope = scope or compute_scope()
        self.split_percent = int(split_percent)
        self.interrupt_grace_s = float(interrupt_grace_s)
        self.legacy_markers = tuple(m for m in legacy_markers if m)
        self._sleep = sleep

    def compute_scope(self) -> str:
        return self.scope.scope_key

    def _log_extra(self, pane_id: Optional[str] = None) -> Dict[str, str]:
        extra = {"scope_key": self.scope.scope_key}
        if pane_id:
            extra["pane_id"] = pane_id
        return extra

    # ownership

    def _owner_of(self, pane_id: str) -> Optional[str]:
        return self.backend.get_option(pane_id, OWNER_TAG)

    def verify_ownership(self, pane_id: str) -> bool:
        return self._owner_of(pane_id) == self.scope.scope_key

    def _tag(self, pane_id: str) -> None:
        if not self.backend.set_option(pane_id, OWNER_TAG, self.scope.scope_key):
            logger.warning("failed to tag pane", extra=self._log_extra(pane_id))

    def _tagged_panes(self) -> List[Tuple[str, str, bool]]:
        """(pane_id, owner, dead) for every pane carrying any ownership tag."""
        out: List[Tuple[str, str, bool]] = []
        for listing in self.backend.list_panes():
            owner = self._owner_of(listing.id)
            if owner:
                out.append((listing.id, owner, listing.dead))
        return out

    def _find_orphan(self) -> Optional[str]:
        for pane_id, owner, _ in self._tagged_panes():
            if owner == self.scope.scope_key:
                return pane_id
        return None

    # tracking record

    def _get_owned_pane_locked(self) -> Optional[str]:
        key = self.scope.scope_key
        pane_id = self.store.read(key)
        if pane_id:
            if self.backend.pane_exists(pane_id) and self.verify_ownership(pane_id):
                return pane_id
            logger.info("clearing stale pane record", extra=self._log_extra(pane_id))
            self.store.clear(key)

        orphan = self._find_orphan()
        if orphan:
            logger.info("reclaiming orphaned pane", extra=self._log_extra(orphan))
            self.store.write(key, orphan)
            return orphan
        return None

    def get_owned_pane(self) -> Optional[str]:
        """The verified live pane owned by this scope, reclaiming an orphan if needed."""
        with self.store.lock(self.scope.scope_key):
            return self._get_owned_pane_locked()

    def _create_pane_locked(
        self,
        command: List[str],
        *,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> Optional[str]:
        target = self.scope.tmux_pane if self.scope.tmux_pane != "no-pane" else None
        pane_id = self.backend.split_window(command, percent=self.split_percent, cwd=cwd, env=env, target=target)
        if not pane_id:
            logger.warning("pane creation failed", extra=self._log_extra())
            return None
        self.store.write(self.scope.scope_key, pane_id)
        self._tag(pane_id)
        # keep the pane around after the canvas exits so it can be respawned
        self.backend.set_option(pane_id, "remain-on-exit", "on")
        logger.info("created canvas pane", extra=self._log_extra(pane_id))
        return pane_id

    def create_pane(
        self,
        command: List[str],
        *,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> Optional[str]:
        with self.store.lock(self.scope.scope_key):
            return self._create_pane_locked(command, cwd=cwd, env=env)

    def reuse_pane(self, pane_id: str, command: List[str], *, env: Optional[Dict[str, str]] = None) -> bool:
        """Run `command` in an existing pane, interrupting whatever runs there."""
        if not self.backend.pane_exists(pane_id):
            return False
        if not self.backend.pane_dead(pane_id):
            self.backend.send_keys(pane_id, "C-c")
            self._sleep(self.interrupt_grace_s)
        ok = self.backend.respawn_pane(pane_id, command, env=env)
        if ok:
            logger.info("reused canvas pane", extra=self._log_extra(pane_id))
        else:
            logger.warning("pane respawn failed", extra=self._log_extra(pane_id))
        return ok

    def acquire_pane(
        self,
        command: List[str],
        *,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> Tuple[Optional[str], bool]:
        """Launch `command` in this scope's pane. Returns (pane_id, reused)."""
        key = self.scope.scope_key
        with self.store.lock(key):
            existing = self._get_owned_pane_locked()
            if existing:
                if self.reuse_pane(existing, command, env=env):
                    return existing, True
                self.store.clear(key)
            return self._create_pane_locked(command, cwd=cwd, env=env), False

    def release_pane(self, pane_id: str, *, kill: bool) -> None:
        """Finish with a pane: kill it (and forget it) or leave it for reuse."""
        if not kill:
            return
        self.backend.kill_pane(pane_id)
        key = self.scope.scope_key
        with self.store.lock(key):
            if self.store.read(key) == pane_id:
                self.store.clear(key)
        logger.info("killed canvas pane", extra=self._log_extra(pane_id))

    # diagnostics and cleanup

    def _is_legacy_canvas(self, pane_id: str) -> Tuple[bool, str]:
        if not self.legacy_markers:
            return False, ""
        cmd = self.backend.pane_command(pane_id)
        if cmd and any(m in cmd for m in self.legacy_markers):
            return True, cmd
        return False, ""

    def cleanup_orphans(self, dry_run: bool = False) -> CleanupResult:
        """Find (and unless `dry_run`, kill) canvas panes nobody owns any more.

        Orphaned means: dead, or tagged by a scope whose record does not point
        at it, or untagged but running canvas content (pre-tagging versions).
        This scope's current pane is never touched.
        """
        key = self.scope.scope_key
        result = CleanupResult(dry_run=dry_run)
        with self.store.lock(key):
            current = self._get_owned_pane_locked()

        seen: Set[str] = set()
        for pane_id, owner, dead in self._tagged_panes():
            seen.add(pane_id)
            if pane_id == current and owner == key:
                continue
            reason = ""
            if dead:
                reason = "dead (process exited)"
            elif self.store.read(owner) != pane_id:
                reason = f"orphaned (scope {owner[:8]}... has no record for this pane)"
            if not reason:
                continue
            result.found.append(OrphanedPane(id=pane_id, reason=reason, owner=owner))
            if not dry_run and self.backend.kill_pane(pane_id):
                result.closed += 1
                if self.store.read(owner) == pane_id:
                    self.store.clear(owner)

        for listing in self.backend.list_panes():
            if listing.id in seen or listing.id == current:
                continue
            legacy, cmd = self._is_legacy_canvas(listing.id)
            if not legacy:
                continue
            result.found.append(OrphanedPane(id=listing.id, reason=f"legacy canvas (no ownership tag): {cmd[:60]}"))
            if not dry_run and self.backend.kill_pane(listing.id):
                result.closed += 1

        if result.found:
            logger.info(
                "orphan scan found %d pane(s), closed %d",
                len(result.found),
                result.closed,
                extra=self._log_extra(),
            )
        return result

    def pane_status(self) -> PaneStatus:
        key = self.scope.scope_key
        current = self.store.read(key)
        status = PaneStatus(scope=key, record=self.store.describe(key), current_pane_id=current)
        if current:
            status.pane_exists = self.backend.pane_exists(current)
            if status.pane_exists:
                status.pane_dead = self.backend.pane_dead(current)
                status.pane_owned = self.verify_ownership(current)
        status.all_canvas_panes = [
            KnownPane(id=pane_id, owner=owner, owned=(owner == key), dead=dead)
            for pane_id, owner, dead in self._tagged_panes()
        ]
        return status
