"""Canonical observability event names emitted by the runtime."""

from typing import List

PREFIX = "agent"

CALL = f"{PREFIX}.call"
CALL_START = f"{CALL}.start"
CALL_STOP = f"{CALL}.stop"
CALL_EXCEPTION = f"{CALL}.exception"

STREAM = f"{PREFIX}.stream"
STREAM_START = f"{STREAM}.start"
STREAM_STOP = f"{STREAM}.stop"
STREAM_EXCEPTION = f"{STREAM}.exception"
STREAM_CHUNK = f"{STREAM}.chunk"

ITERATION_START = f"{PREFIX}.iteration.start"
ITERATION_STOP = f"{PREFIX}.iteration.stop"

PROVIDER = f"{PREFIX}.provider"
PROVIDER_START = f"{PROVIDER}.start"
PROVIDER_STOP = f"{PROVIDER}.stop"
PROVIDER_EXCEPTION = f"{PROVIDER}.exception"

TOOL_START = f"{PREFIX}.tool.start"
TOOL_DECISION = f"{PREFIX}.tool.decision"
TOOL_RETRY = f"{PREFIX}.tool.retry"
TOOL_ERROR = f"{PREFIX}.tool.error"
TOOL_COMPLETE = f"{PREFIX}.tool.complete"

HOOK_START = f"{PREFIX}.hook.start"
HOOK_STOP = f"{PREFIX}.hook.stop"
HOOK_ERROR = f"{PREFIX}.hook.error"

TOKEN_LIMIT_WARNING = f"{PREFIX}.token_limit.warning"
BUDGET_WARNING = f"{PREFIX}.budget.warning"

DISCLOSURE_PROCESS_RESULTS = f"{PREFIX}.disclosure.process_results"
DISCLOSURE_SLIDING_WINDOW = f"{PREFIX}.disclosure.sliding_window"
DISCLOSURE_TOKEN_COMPACTION = f"{PREFIX}.disclosure.token_compaction"


def span_events(name: str) -> List[str]:
    return [f"{name}.start", f"{name}.stop", f"{name}.exception"]


def invocation_events() -> List[str]:
    return span_events(CALL) + span_events(STREAM) + [STREAM_CHUNK]


def tool_events() -> List[str]:
    return [TOOL_START, TOOL_DECISION, TOOL_RETRY, TOOL_ERROR, TOOL_COMPLETE]


def hook_events() -> List[str]:
    return [HOOK_START, HOOK_STOP, HOOK_ERROR]


def disclosure_events() -> List[str]:
    return [
        DISCLOSURE_PROCESS_RESULTS,
        DISCLOSURE_SLIDING_WINDOW,
        DISCLOSURE_TOKEN_COMPACTION,
    ]


def all_events() -> List[str]:
    """Every event name the runtime can emit."""

    return (
        invocation_events()
        + [ITERATION_START, ITERATION_STOP]
        + span_events(PROVIDER)
        + tool_events()
        + hook_events()
        + [TOKEN_LIMIT_WARNING, BUDGET_WARNING]
        + disclosure_events()
    )
