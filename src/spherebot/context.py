"""Resolve or create the remote conversation bound to a Slack thread."""

from __future__ import annotations

import re
from dataclasses import dataclass

from spherebot.config import DEFAULT_WORKSPACE, WORKSPACE_OVERRIDE_PREFIX
from spherebot.db.mappings import ConversationMapping, MappingLookup, MappingStore
from spherebot.errors import ContextCreationFailure, MappingStoreUnavailable, UpstreamError
from spherebot.logging import get_logger
from spherebot.tasks import InlineRunner, TaskRunner
from spherebot.workspaces import WorkspaceCache

logger = get_logger(__name__)

_OVERRIDE_RE = re.compile(re.escape(WORKSPACE_OVERRIDE_PREFIX) + r"(\S+)")


@dataclass(frozen=True)
class ConversationContext:
    workspace: str
    thread_id: str
    created: bool = False
    remembered: bool = True


def workspace_override(text: str) -> str | None:
    """First ``#token`` in ``text`` (without the hash), if any."""

    match = _OVERRIDE_RE.search(text or "")
    return match.group(1) if match else None


def strip_workspace_marker(text: str, workspace: str) -> str:
    """Remove the ``#workspace`` marker that selected ``workspace``."""

    marker = re.escape(WORKSPACE_OVERRIDE_PREFIX + workspace)
    cleaned = re.sub(rf"(?<!\S){marker}(?!\S)", "", text or "", count=1)
    return re.sub(r"[ \t]{2,}", " ", cleaned).strip()


class ContextResolver:
    """Map ``(channel_id, thread_root_key)`` to a remote workspace thread.

    The mapping row is created with insert-if-absent, which is the only
    mutual exclusion involved: no lock is held across the remote
    ``create_thread`` call. Two resolvers racing on a brand-new thread may
    both create remote threads; the first inserted row wins and the loser
    re-reads it, orphaning its own remote thread.
    """

    def __init__(
        self,
        mappings: MappingStore,
        llm,
        workspaces: WorkspaceCache,
        *,
        default_workspace: str = DEFAULT_WORKSPACE,
        background: TaskRunner | None = None,
    ) -> None:
        self._mappings = mappings
        self._llm = llm
        self.workspaces = workspaces
        self.default_workspace = default_workspace
        self._background = background or InlineRunner()

    def resolve(self, channel_id: str, thread_root_key: str, query_text: str) -> ConversationContext:
        lookup = self._lookup(channel_id, thread_root_key)
        if lookup.found:
            mapping = lookup.mapping
            self._background.add_task(
                self._touch, channel_id, thread_root_key, label="mapping-touch"
            )
            logger.debug(
                "Existing remote thread %s:%s for %s/%s",
                mapping.remote_workspace,
                mapping.remote_thread_id,
                channel_id,
                thread_root_key,
            )
            return ConversationContext(mapping.remote_workspace, mapping.remote_thread_id)

        workspace = self.choose_workspace(query_text)
        try:
            thread_id = self._llm.create_thread(workspace)
        except UpstreamError as exc:
            raise ContextCreationFailure(
                f"could not create a remote thread in workspace {workspace}"
            ) from exc

        candidate = ConversationMapping(
            channel_id=channel_id,
            thread_root_key=thread_root_key,
            remote_workspace=workspace,
            remote_thread_id=thread_id,
        )
        try:
            inserted = self._mappings.insert_if_absent(candidate)
        except MappingStoreUnavailable:
            logger.warning(
                "Mapping store unavailable, thread %s/%s will not be remembered",
                channel_id,
                thread_root_key,
                exc_info=True,
            )
            return ConversationContext(workspace, thread_id, created=True, remembered=False)

        if inserted:
            logger.info(
                "Bound %s/%s to remote thread %s:%s",
                channel_id,
                thread_root_key,
                workspace,
                thread_id,
            )
            return ConversationContext(workspace, thread_id, created=True)

        winner = self._lookup(channel_id, thread_root_key)
        logger.info(
            "Lost mapping race for %s/%s; remote thread %s:%s is orphaned",
            channel_id,
            thread_root_key,
            workspace,
            thread_id,
        )
        if not winner.found:
            # Row vanished or store went away between insert and re-read.
            return ConversationContext(workspace, thread_id, created=True, remembered=False)
        return ConversationContext(
            winner.mapping.remote_workspace, winner.mapping.remote_thread_id
        )

    def choose_workspace(self, query_text: str) -> str:
        token = workspace_override(query_text)
        if token is None:
            return self.default_workspace
        if token in self.workspaces.get():
            logger.info("Workspace override accepted: %s", token)
            return token
        logger.info("Workspace override %r is not available, using %s", token, self.default_workspace)
        return self.default_workspace

    def _lookup(self, channel_id: str, thread_root_key: str) -> MappingLookup:
        try:
            return self._mappings.lookup(channel_id, thread_root_key)
        except MappingStoreUnavailable:
            logger.warning(
                "Mapping lookup failed for %s/%s, treating as new thread",
                channel_id,
                thread_root_key,
                exc_info=True,
            )
            return MappingLookup.miss()

    def _touch(self, channel_id: str, thread_root_key: str) -> None:
        try:
            self._mappings.touch(channel_id, thread_root_key)
        except MappingStoreUnavailable:
            logger.warning("Could not refresh last access for %s/%s", channel_id, thread_root_key)
