"""
Agent Logger for Markdown Execution Logs.
Human-readable record of indexing batches, searches, chat turns and voice sessions.
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class AgentLogger:
    """
    Markdown logger for assistant execution.

    Entries are queued and written by a background task when an event loop
    is running, synchronously otherwise.
    """

    def __init__(self, log_path: str = "logs/agent_log.md"):
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        self._queue: asyncio.Queue = asyncio.Queue()
        self._writer_task: Optional[asyncio.Task] = None
        self._running = False

        self._start_writer()

    def _start_writer(self):
        """Start the background log writer."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # No event loop, will write synchronously
            return
        self._writer_task = asyncio.create_task(self._write_loop())
        self._running = True

    async def _write_loop(self):
        while self._running:
            try:
                entry = await asyncio.wait_for(self._queue.get(), timeout=1.0)
                self._sync_write(entry)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

    def _sync_write(self, entry: str):
        try:
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(entry)
                f.write("\n")
        except OSError as e:
            logger.error(f"Failed to write log: {e}")

    async def _log(self, entry: str):
        if self._running and self._writer_task:
            await self._queue.put(entry)
        else:
            self._sync_write(entry)

    # =========================
    # Public Logging Methods
    # =========================

    async def log_index_batch(
        self,
        connector_id: str,
        source_type: str,
        results: List[Dict[str, Any]],
        owner_user_id: Optional[str] = None,
        latency_ms: Optional[float] = None
    ):
        """Log an indexing batch with per-document outcomes."""
        timestamp = datetime.now().strftime("%H:%M:%S")

        counts = {"indexed": 0, "skipped": 0, "error": 0}
        rows = ""
        for result in results:
            status = result.get("status", "error")
            counts[status] = counts.get(status, 0) + 1
            note = result.get("error") or result.get("reason") or ""
            rows += f"| {result.get('title', '')[:60]} | {status} | {note} |\n"

        entry = f"""### 📥 Index Batch: `{connector_id}` | {timestamp}

**Source Type:** {source_type}
**Owner:** {owner_user_id or 'global'}
**Indexed:** {counts['indexed']} | **Skipped:** {counts['skipped']} | **Errors:** {counts['error']}
{f'**Batch Time:** {latency_ms:.0f}ms' if latency_ms else ''}

| Title | Status | Note |
|-------|--------|------|
{rows}"""
        await self._log(entry)

    async def log_search(
        self,
        query: str,
        search_type: str,
        result_count: int,
        connector_id: Optional[str] = None,
        latency_ms: Optional[float] = None
    ):
        """Log a search request."""
        timestamp = datetime.now().strftime("%H:%M:%S")

        entry = f"""### 🔎 Search | {timestamp}

**Query:** "{query}"
**Mode:** {search_type}
**Connector:** {connector_id or 'all'}
**Results:** {result_count}
{f'**Latency:** {latency_ms:.0f}ms' if latency_ms else ''}
"""
        await self._log(entry)

    async def log_chat_turn(
        self,
        session_id: str,
        user_text: str,
        assistant_text: str,
        tool_calls: Optional[List[str]] = None,
        latency_ms: Optional[float] = None
    ):
        """Log a completed chat turn."""
        timestamp = datetime.now().strftime("%H:%M:%S")

        display_response = assistant_text
        if len(assistant_text) > 500:
            display_response = assistant_text[:500] + "..."

        tools_used = ", ".join(tool_calls) if tool_calls else "None"

        entry = f"""### 💬 Chat Turn | {timestamp}

**Session:** `{session_id}`
**User:** "{user_text}"

> {display_response}

**Tools Used:** {tools_used}
{f'**Latency:** {latency_ms:.0f}ms' if latency_ms else ''}
"""
        await self._log(entry)

    async def log_voice_session(self, session_id: str, event: str):
        """Log a voice session lifecycle event (started, ended)."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        entry = f"""
---

## 🎙️ Voice Session {event.title()}: `{session_id}`

**Timestamp:** {timestamp}

---
"""
        await self._log(entry)

    async def log_error(
        self,
        session_id: str,
        error_type: str,
        error_message: str,
        stack_trace: Optional[str] = None
    ):
        """Log an error."""
        timestamp = datetime.now().strftime("%H:%M:%S")

        entry = f"""### ❌ Error | {timestamp}

**Session:** `{session_id}`
**Type:** `{error_type}`
**Message:** {error_message}
"""

        if stack_trace:
            entry += f"""
<details>
<summary>Stack Trace</summary>

```
{stack_trace}
```

</details>
"""

        await self._log(entry)

    async def log_system_event(
        self,
        event: str,
        details: Dict[str, Any]
    ):
        """Log a system event."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        details_str = ""
        for key, value in details.items():
            details_str += f"- **{key}:** {value}\n"

        entry = f"""### ⚙️ System Event | {timestamp}

**Event:** {event}

{details_str}
---
"""
        await self._log(entry)

    async def initialize_log(self):
        """Initialize the log file with header."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        header = f"""# 🛰️ NOVA Assistant Execution Log

**Generated:** {timestamp}

---

## System Overview

**Retrieval:** Connector → Sanitize → Hash → Dedupe → Embed → Store
**Conversation:** Voice/Text → Chat Stream → Assistant Turn → Speech

---

## Execution Log

"""

        with open(self.log_path, "w", encoding="utf-8") as f:
            f.write(header)

        logger.info(f"Agent log initialized: {self.log_path}")

    async def close(self):
        """Close the logger and flush pending entries."""
        self._running = False

        if self._writer_task:
            self._writer_task.cancel()
            try:
                await self._writer_task
            except asyncio.CancelledError:
                pass

        while not self._queue.empty():
            try:
                entry = self._queue.get_nowait()
                self._sync_write(entry)
            except asyncio.QueueEmpty:
                break

        logger.info("Agent logger closed")
