"""JSON-lines channel that attaches the engine to a live calendar tab.

One request object per line in, one response object per line out. Requests
on a connection run concurrently so a newer activation can supersede a
queued one; a ``requestId`` field is echoed back for correlation.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

from calgroups.common import is_host_page
from calgroups.config import EngineConfig
from calgroups.engine import GroupEngine
from calgroups.errors import ChannelUnavailable
from calgroups.gateway import MessagingGateway
from calgroups.groups import GroupDefinitions, GroupFile
from calgroups.host_page import HostPage
from calgroups.journal import Journal

DEFAULT_BIND_HOST = "127.0.0.1"
DEFAULT_PORT = 8765
MAX_LINE_BYTES = 256 * 1024


class ChannelServer:
    def __init__(self, gateway: MessagingGateway, *, host: str = DEFAULT_BIND_HOST, port: int = DEFAULT_PORT) -> None:
        self.gateway = gateway
        self.host = host
        self.port = port

    async def start(self) -> asyncio.AbstractServer:
        return await asyncio.start_server(self._serve_client, self.host, self.port, limit=MAX_LINE_BYTES)

    async def respond(self, raw: bytes) -> dict[str, Any]:
        try:
            payload = json.loads(raw.decode("utf-8", errors="replace"))
        except json.JSONDecodeError:
            return {"error": "invalid_json"}
        response = await self.gateway.handle(payload)
        if isinstance(payload, dict) and "requestId" in payload:
            response = {**response, "requestId": payload["requestId"]}
        return response

    async def _serve_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        write_lock = asyncio.Lock()
        pending: set[asyncio.Task[None]] = set()

        async def answer(raw: bytes) -> None:
            response = await self.respond(raw)
            body = json.dumps(response, ensure_ascii=False).encode("utf-8") + b"\n"
            async with write_lock:
                writer.write(body)
                await writer.drain()

        try:
            while True:
                try:
                    raw = await reader.readline()
                except (asyncio.LimitOverrunError, ValueError):
                    break
                if not raw:
                    break
                if not raw.strip():
                    continue
                task = asyncio.create_task(answer(raw))
                pending.add(task)
                task.add_done_callback(pending.discard)
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        except ConnectionError:
            pass
        finally:
            writer.close()


async def request(message: dict[str, Any], *, host: str = DEFAULT_BIND_HOST, port: int = DEFAULT_PORT, timeout_seconds: float = 60.0) -> dict[str, Any]:
    try:
        reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=5.0)
    except (OSError, asyncio.TimeoutError) as exc:
        raise ChannelUnavailable(f"Engine channel unavailable at {host}:{port}: {exc}") from exc
    try:
        writer.write(json.dumps(message, ensure_ascii=False).encode("utf-8") + b"\n")
        await writer.drain()
        raw = await asyncio.wait_for(reader.readline(), timeout=timeout_seconds)
    except (OSError, asyncio.TimeoutError) as exc:
        raise ChannelUnavailable(f"Engine channel failed ({message.get('action')}): {exc}") from exc
    finally:
        writer.close()
    if not raw:
        raise ChannelUnavailable("Engine channel closed without a response")
    try:
        parsed = json.loads(raw.decode("utf-8", errors="replace"))
    except json.JSONDecodeError as exc:
        raise ChannelUnavailable("Engine channel returned invalid JSON") from exc
    if not isinstance(parsed, dict):
        raise ChannelUnavailable("Engine channel returned an invalid payload")
    return parsed


def pick_page(browser: Any, hosts: tuple[str, ...]) -> Any:
    pages = [page for context in browser.contexts for page in context.pages]
    if not pages:
        raise ChannelUnavailable("Browser has no open pages")
    for page in pages:
        if is_host_page(str(page.url or ""), hosts):
            return page
    return pages[0]


def build_gateway(page: Any, config: EngineConfig, groups_path: Path | None = None) -> MessagingGateway:
    journal = Journal(config.journal_size, config.log_path)
    engine = GroupEngine(HostPage(page, journal=journal), config=config, journal=journal)
    groups = GroupFile(groups_path) if groups_path is not None else GroupDefinitions()
    return MessagingGateway(engine, groups)


async def serve(
    cdp_url: str,
    config: EngineConfig,
    *,
    groups_path: Path | None = None,
    bind_host: str = DEFAULT_BIND_HOST,
    port: int = DEFAULT_PORT,
) -> None:
    from playwright.async_api import async_playwright

    pw = await async_playwright().start()
    try:
        try:
            browser = await pw.chromium.connect_over_cdp(cdp_url)
        except Exception as exc:
            raise ChannelUnavailable(f"Could not attach to browser at {cdp_url}: {exc}") from exc
        gateway = build_gateway(pick_page(browser, config.hosts), config, groups_path)
        server = await ChannelServer(gateway, host=bind_host, port=port).start()
        gateway.engine.journal.info("channel_listening", f"{bind_host}:{port}", cdp_url=cdp_url)
        async with server:
            await server.serve_forever()
    finally:
        await pw.stop()
