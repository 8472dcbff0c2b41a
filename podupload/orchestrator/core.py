"""Core orchestrator - drives one upload session through the pipeline."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..exceptions import (
    BusyError,
    DeadlineExceeded,
    InvalidStateError,
    NetworkError,
    OperationCancelled,
    ResolutionError,
    ServerError,
)
from ..models import (
    DurationResult,
    ErrorKind,
    ResolvedAsset,
    SessionError,
    SessionSnapshot,
    SessionState,
    StorageHandle,
    UploadConfig,
    UploadRequest,
    UploadSession,
)
from ..protocols import IDurationProbe, ITransportClient
from ..services import (
    FileValidator,
    HTTPAPIClient,
    ProgressEstimator,
    UrlResolver,
    build_duration_probe,
    build_transport,
)
from ..utils.deadline import CancellationToken, Deadline, run_with_deadline
from ..utils.events import SessionEventChannel, SnapshotCallback, Unsubscribe

logger = logging.getLogger(__name__)

# Progress milestones; the estimator fills the gap between upload start and
# the configured ceiling.
VALIDATING_PROGRESS = 5
UPLOAD_START_PROGRESS = 10
RESOLVING_PROGRESS = 55
RESOLVING_SPAN = 20
EXTRACTING_PROGRESS = 80
COMPLETE_PROGRESS = 100

STEP_LABELS = {
    SessionState.IDLE: "Waiting for file",
    SessionState.VALIDATING: "Validating file",
    SessionState.UPLOADING: "Uploading {kind}",
    SessionState.RESOLVING: "Resolving public URL",
    SessionState.EXTRACTING_METADATA: "Reading {kind} metadata",
    SessionState.COMPLETE: "Upload complete",
    SessionState.ERROR: "Upload failed",
    SessionState.CANCELLED: "Upload cancelled",
}

RESOLUTION_GUIDANCE = (
    "The file was uploaded but its public URL is not available yet. "
    "Wait a moment and start a new upload."
)


class OperationHandle:
    """Handle to a started (or retried) session."""

    def __init__(self, orchestrator: "UploadOrchestrator", session: UploadSession):
        self._orchestrator = orchestrator
        self._session = session

    @property
    def session_id(self) -> str:
        return self._session.session_id

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._session.snapshot()

    async def wait(self) -> SessionSnapshot:
        """Wait for the session to settle and every event to be delivered."""
        return await self._orchestrator._wait(self._session)


class UploadOrchestrator:
    """
    Orchestrates a single upload session using injected services.

    States: idle -> validating -> uploading -> resolving ->
    extracting_metadata -> complete, with error and cancelled reachable from
    every non-terminal state. One session may be active at a time.

    Usage:
        async with UploadOrchestrator(UploadConfig.from_env()) as uploader:
            uploader.subscribe(lambda snap: print(snap.state, snap.progress_percent))
            handle = uploader.start(UploadRequest.from_path("episode.mp3"))
            final = await handle.wait()

        # With injected collaborators (no HTTP client is created)
        uploader = UploadOrchestrator(config, transport=my_transport, duration_probe=my_probe)
    """

    def __init__(
        self,
        config: Optional[UploadConfig] = None,
        transport: Optional[ITransportClient] = None,
        duration_probe: Optional[IDurationProbe] = None,
        validator: Optional[FileValidator] = None,
        api_client: Optional[HTTPAPIClient] = None,
    ):
        """
        Initialize orchestrator with dependencies.

        Args:
            config: Upload configuration
            transport: Storage backend (built from config in __aenter__ if omitted)
            duration_probe: Duration probe (built from config in __aenter__ if omitted)
            validator: File validator (built from config if omitted)
            api_client: HTTP client shared by built collaborators
        """
        self._config = config or UploadConfig()
        self._transport = transport
        self._probe = duration_probe
        self._validator = validator or FileValidator(self._config)
        self._api_client = api_client
        self._owned_client: Optional[HTTPAPIClient] = None
        self._resolver: Optional[UrlResolver] = None
        self._events = SessionEventChannel()

        # Current session and its run
        self._session: Optional[UploadSession] = None
        self._task: Optional[asyncio.Task] = None
        self._token: Optional[CancellationToken] = None
        self._estimator: Optional[ProgressEstimator] = None

    async def __aenter__(self):
        """Build the HTTP client and any collaborators not injected."""
        needs_probe = self._probe is None and self._config.probe_duration
        if self._transport is None or needs_probe:
            if self._api_client is None:
                self._owned_client = HTTPAPIClient(timeout=self._config.http_timeout)
                await self._owned_client.__aenter__()
                self._api_client = self._owned_client
            try:
                if self._transport is None:
                    self._transport = build_transport(self._config, self._api_client)
                if self._probe is None:
                    self._probe = build_duration_probe(self._config, self._api_client)
            except Exception:
                await self._close_owned_client()
                raise
        return self

    async def __aexit__(self, *args):
        """Cancel any active session and release resources."""
        self.cancel()
        if self._task is not None:
            await asyncio.wait({self._task})
        await self._events.join()
        await self._close_owned_client()

    async def _close_owned_client(self) -> None:
        if self._owned_client is not None:
            await self._owned_client.__aexit__(None, None, None)
            self._owned_client = None
            self._api_client = None

    @property
    def config(self) -> UploadConfig:
        return self._config

    # Public API

    def start(self, request: UploadRequest) -> OperationHandle:
        """
        Start a new session for request.

        Raises:
            BusyError: a session is still active (nothing is changed)
        """
        if self._session is not None and not self._session.state.is_terminal:
            raise BusyError(
                f"Session {self._session.session_id} is still {self._session.state.value}; cancel it first"
            )
        if self._transport is None:
            raise RuntimeError("No transport configured. Pass transport= or use 'async with'.")

        session = UploadSession(request=request)
        self._session = session
        logger.info(f"[orchestrator] Session {session.session_id} started for {request.filename}")
        self._spawn(session, self._run_from_start)
        return OperationHandle(self, session)

    def retry(self, session_id: Optional[str] = None) -> OperationHandle:
        """
        Re-enter uploading with the already validated file.

        Raises:
            InvalidStateError: the session is not in a retryable error state
        """
        session = self._require_session(session_id)
        if session.state is not SessionState.ERROR:
            raise InvalidStateError(f"retry() requires a failed session (state: {session.state.value})")
        if session.error is None or not session.error.kind.retryable:
            kind = session.error.kind.value if session.error else "unknown"
            raise InvalidStateError(f"Session failed with {kind}; start a new upload instead")

        session.retry_count += 1
        session.error = None
        logger.info(f"[orchestrator] Session {session.session_id} retry #{session.retry_count}")
        # Set synchronously so the session counts as active before the run starts.
        session.state = SessionState.UPLOADING
        self._spawn(session, self._run_from_retry)
        return OperationHandle(self, session)

    def cancel(self, session_id: Optional[str] = None) -> bool:
        """
        Cancel the active session. Returns False if there was nothing to cancel.

        In-flight results are discarded when they arrive; bytes already sent
        are not recalled.
        """
        if self._session is None:
            return False
        session = self._require_session(session_id)
        if session.state.is_terminal:
            return False

        if self._token is not None:
            self._token.cancel()
        self._stop_estimator()
        self._transition(session, SessionState.CANCELLED)
        logger.info(f"[orchestrator] Session {session.session_id} cancelled")

        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        return True

    def subscribe(self, callback: SnapshotCallback, session_id: Optional[str] = None) -> Unsubscribe:
        """Receive a snapshot on every state or progress change."""
        return self._events.subscribe(callback, session_id)

    def snapshot(self, session_id: Optional[str] = None) -> Optional[SessionSnapshot]:
        if self._session is None:
            return None
        return self._require_session(session_id).snapshot()

    # Pipeline

    def _spawn(
        self,
        session: UploadSession,
        runner: Callable[[UploadSession, CancellationToken], Awaitable[None]],
    ) -> None:
        token = CancellationToken()
        self._token = token
        self._task = asyncio.create_task(self._guarded(session, token, runner))

    async def _guarded(self, session, token, runner) -> None:
        try:
            await runner(session, token)
        except asyncio.CancelledError:
            if not token.cancelled:
                raise
        except OperationCancelled:
            logger.debug(f"[orchestrator] Run of {session.session_id} stopped by cancellation")
        except Exception as e:
            logger.error(f"[orchestrator] Unexpected error in session {session.session_id}: {e}", exc_info=True)
            if self._is_current(session, token):
                self._fail(session, ErrorKind.SERVER_ERROR, f"Unexpected error: {e}")
        finally:
            if self._token is token:
                self._stop_estimator()

    async def _run_from_start(self, session: UploadSession, token: CancellationToken) -> None:
        self._transition(session, SessionState.VALIDATING, VALIDATING_PROGRESS)
        validation = self._validator.validate(session.request)
        if not validation.ok:
            logger.warning(f"[orchestrator] {session.request.filename} rejected: {validation.message}")
            self._fail(session, ErrorKind.INVALID_INPUT, validation.message)
            return

        self._transition(session, SessionState.UPLOADING, UPLOAD_START_PROGRESS)
        await self._run_pipeline(session, token)

    async def _run_from_retry(self, session: UploadSession, token: CancellationToken) -> None:
        self._transition(session, SessionState.UPLOADING, UPLOAD_START_PROGRESS)
        await self._run_pipeline(session, token)

    async def _run_pipeline(self, session: UploadSession, token: CancellationToken) -> None:
        handle = await self._upload(session, token)
        if handle is None or not self._is_current(session, token):
            return

        self._transition(session, SessionState.RESOLVING, RESOLVING_PROGRESS)
        try:
            url = await self._get_resolver().resolve(
                handle,
                token,
                on_attempt=lambda attempt, total: self._on_resolve_attempt(session, token, attempt, total),
            )
        except ResolutionError as e:
            if self._is_current(session, token):
                self._fail(session, ErrorKind.RESOLUTION_ERROR, f"{e}. {RESOLUTION_GUIDANCE}")
            return
        if not self._is_current(session, token):
            logger.warning(f"[orchestrator] Discarded URL resolved after cancellation of {session.session_id}")
            return

        self._transition(session, SessionState.EXTRACTING_METADATA, EXTRACTING_PROGRESS)
        duration = await self._probe_duration(url)
        if not self._is_current(session, token):
            logger.warning(f"[orchestrator] Discarded duration read after cancellation of {session.session_id}")
            return

        session.result = ResolvedAsset(
            public_url=url,
            duration_seconds=duration.seconds,
            storage_handle=handle,
            metadata_warning=duration.warning,
        )
        self._transition(session, SessionState.COMPLETE, COMPLETE_PROGRESS)
        logger.info(f"[orchestrator] Session {session.session_id} complete: {url} ({duration.seconds:.1f}s)")

    async def _upload(self, session: UploadSession, token: CancellationToken) -> Optional[StorageHandle]:
        """Race the transfer against the deadline while the estimator ticks."""
        estimator = ProgressEstimator(
            on_tick=lambda percent: self._on_progress_tick(session, token, percent),
            interval=self._config.progress_tick_interval,
            ceiling=self._config.progress_ceiling_during_upload,
            step=self._config.progress_tick_step,
        )
        self._estimator = estimator
        estimator.start(session.progress_percent)

        deadline = Deadline(self._config.upload_deadline)
        try:
            return await run_with_deadline(self._transfer(session.request), deadline, token)
        except DeadlineExceeded as e:
            if self._is_current(session, token):
                self._fail(session, ErrorKind.TIMEOUT, f"{e}. Try again or use a smaller file.")
        except NetworkError as e:
            if self._is_current(session, token):
                self._fail(session, ErrorKind.NETWORK_ERROR, str(e))
        except ServerError as e:
            if self._is_current(session, token):
                self._fail(session, ErrorKind.SERVER_ERROR, str(e))
        finally:
            estimator.stop()
        return None

    async def _transfer(self, request: UploadRequest) -> StorageHandle:
        target = await self._transport.obtain_upload_target(request)
        return await self._transport.upload_bytes(target, request)

    async def _probe_duration(self, url: str) -> DurationResult:
        if not self._config.probe_duration:
            return DurationResult(seconds=0.0)
        if self._probe is None:
            logger.warning("[orchestrator] No duration probe configured, using 0")
            return DurationResult.failed("No duration probe configured")
        timeout = self._config.metadata_timeout
        try:
            result = await asyncio.wait_for(self._probe.probe(url), timeout=timeout)
        except asyncio.TimeoutError:
            result = DurationResult.failed(f"Timed out after {timeout:g}s")
        except Exception as e:
            result = DurationResult.failed(str(e) or type(e).__name__)
        if result.warning:
            logger.warning(f"[orchestrator] Duration unavailable, using 0: {result.detail}")
        return result

    # Callbacks from collaborators

    def _on_progress_tick(self, session: UploadSession, token: CancellationToken, percent: int) -> None:
        if not self._is_current(session, token) or session.state is not SessionState.UPLOADING:
            return
        if session.advance(percent):
            self._events.publish(session.snapshot())

    def _on_resolve_attempt(self, session: UploadSession, token: CancellationToken, attempt: int, total: int) -> None:
        if attempt == 1 or not self._is_current(session, token):
            return
        session.step_label = f"{self._step_label(SessionState.RESOLVING)} (attempt {attempt}/{total})"
        session.advance(RESOLVING_PROGRESS + RESOLVING_SPAN * (attempt - 1) // total)
        self._events.publish(session.snapshot())

    # Helpers

    def _step_label(self, state: SessionState) -> str:
        kind = self._config.allowed_mime_prefix.rstrip("/") or "file"
        return STEP_LABELS[state].format(kind=kind)

    def _transition(self, session: UploadSession, state: SessionState, progress: Optional[int] = None) -> None:
        session.state = state
        session.step_label = self._step_label(state)
        if progress is not None:
            session.advance(progress)
        logger.debug(f"[orchestrator] {session.session_id} -> {state.value} ({session.progress_percent}%)")
        self._events.publish(session.snapshot())

    def _fail(self, session: UploadSession, kind: ErrorKind, message: str) -> None:
        session.error = SessionError(kind=kind, message=message)
        logger.warning(f"[orchestrator] Session {session.session_id} failed ({kind.value}): {message}")
        self._transition(session, SessionState.ERROR)

    def _is_current(self, session: UploadSession, token: CancellationToken) -> bool:
        return not token.cancelled and self._session is session and self._token is token

    def _stop_estimator(self) -> None:
        if self._estimator is not None:
            self._estimator.stop()
            self._estimator = None

    def _get_resolver(self) -> UrlResolver:
        if self._resolver is None:
            self._resolver = UrlResolver.from_config(self._transport, self._config)
        return self._resolver

    def _require_session(self, session_id: Optional[str]) -> UploadSession:
        session = self._session
        if session is None:
            raise InvalidStateError("No upload session")
        if session_id is not None and session_id != session.session_id:
            raise InvalidStateError(f"Unknown session {session_id}")
        return session

    async def _wait(self, session: UploadSession) -> SessionSnapshot:
        while self._session is session and self._task is not None and not self._task.done():
            if self._task is asyncio.current_task():
                break
            await asyncio.wait({self._task})
        await self._events.join()
        return session.snapshot()
