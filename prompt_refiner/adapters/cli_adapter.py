from __future__ import annotations

import asyncio
import os
from typing import Dict, List, Optional, Sequence, Set, Tuple

from prompt_refiner.adapters.llm_base import LLMAdapter, LLMResponse
from prompt_refiner.errors import InvocationTimeoutError, NonZeroExitError, SpawnError
from prompt_refiner.models import Provider
from prompt_refiner.utils.log import log

DEFAULT_TIMEOUT_MS = 30000
TERMINATE_GRACE_SECONDS = 5.0

# provider -> (binary env var, binary default, model env var, model default)
PROVIDER_DEFAULTS: Dict[Provider, Tuple[str, str, str, str]] = {
    Provider.CODEX: ("REFINER_CODEX_BIN", "codex", "REFINER_CODEX_MODEL", "gpt-5"),
    Provider.GEMINI: ("REFINER_GEMINI_BIN", "gemini", "REFINER_GEMINI_MODEL", "gemini-pro"),
}


async def run_cli(
    command: str,
    args: Sequence[str],
    stdin_payload: str,
    timeout_ms: int,
) -> LLMResponse:
    """Spawn one process, feed it stdin_payload and wait for it under a deadline.

    Failures are returned in LLMResponse.error, never raised.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        return LLMResponse(
            raw_text="",
            error=SpawnError(
                f"Failed to start {command} CLI. Is it installed and in your PATH? Error: {exc}"
            ),
        )

    try:
        stdout, stderr = await asyncio.wait_for(
            process.communicate(stdin_payload.encode("utf-8")),
            timeout=timeout_ms / 1000,
        )
    except asyncio.TimeoutError:
        _terminate(process)
        return LLMResponse(raw_text="", error=InvocationTimeoutError(command, timeout_ms))

    stdout_text = stdout.decode("utf-8", errors="replace")
    stderr_text = stderr.decode("utf-8", errors="replace")
    if process.returncode != 0:
        return LLMResponse(
            raw_text=stdout_text,
            error=NonZeroExitError(command, process.returncode, stderr_text),
        )
    return LLMResponse(raw_text=stdout_text.strip())


_PENDING_REAPS: Set[asyncio.Task] = set()


def _terminate(process: asyncio.subprocess.Process) -> None:
    """Send SIGTERM and leave reaping (and SIGKILL, if ignored) to a background task."""
    try:
        process.terminate()
    except ProcessLookupError:
        return
    task = asyncio.ensure_future(_reap(process))
    _PENDING_REAPS.add(task)
    task.add_done_callback(_collect_reap)


async def _reap(process: asyncio.subprocess.Process) -> None:
    try:
        await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
    except asyncio.TimeoutError:
        _kill(process)
        await process.wait()
    except asyncio.CancelledError:
        # Event loop shutting down before the grace period ended.
        _kill(process)
        raise


def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass


def _collect_reap(task: asyncio.Task) -> None:
    _PENDING_REAPS.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        log("cli", f"failed to reap timed out process: {error}")


async def wait_for_reaps() -> None:
    """Wait until every process terminated after a timeout has been reaped."""
    if _PENDING_REAPS:
        await asyncio.gather(*list(_PENDING_REAPS), return_exceptions=True)


class CLIAdapter(LLMAdapter):
    def __init__(
        self,
        provider: Provider,
        model: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> None:
        bin_env, bin_default, model_env, model_default = PROVIDER_DEFAULTS[provider]
        self.provider = provider
        self.name = provider.value
        self.command = os.getenv(bin_env, bin_default)
        self.model = model or os.getenv(model_env, model_default)
        if timeout_ms is None:
            timeout_ms = int(os.getenv("REFINER_TIMEOUT_MS", str(DEFAULT_TIMEOUT_MS)))
        self.timeout_ms = timeout_ms

    def args(self) -> List[str]:
        return ["chat", "-m", self.model, "--format", "json"]

    async def complete(self, prompt: str) -> LLMResponse:
        args = self.args()
        log(self.name, f"model={self.model} command={self.command} {' '.join(args)}")
        response = await run_cli(self.command, args, prompt, self.timeout_ms)
        if response.error is not None:
            log(self.name, f"{response.error.kind} failure: {response.error}")
        return response
