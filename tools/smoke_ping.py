from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from telewire.client.mtproto import TEST_DCS, ClientInit, MtprotoClient
from telewire.mtproto.session import FileSessionStore


async def _run(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    client = MtprotoClient(
        network="test",
        dc_id=args.dc,
        session_name=args.session,
        session_store=FileSessionStore(Path(args.sessions_dir)),
        init=ClientInit(api_id=args.api_id) if args.api_id is not None else None,
    )
    async with client:
        pong = await client.ping(timeout=args.timeout)
        print({"ping_id": pong.ping_id, "msg_id": pong.msg_id})
        if client.config is not None:
            dcs = sorted({opt.id for opt in client.config.dc_options})
            print({"this_dc": client.config.this_dc, "dc_ids": dcs})
    return 0


def main() -> int:
    p = argparse.ArgumentParser(
        description="Smoke-test an encrypted MTProto ping (reuses the saved auth key if any)."
    )
    p.add_argument(
        "--dc",
        type=int,
        choices=sorted(TEST_DCS.keys()),
        default=2,
        help="Test DC number (ignored once a session is saved)",
    )
    p.add_argument("--session", type=str, default="smoke", help="Session name")
    p.add_argument(
        "--sessions-dir", type=str, default=".sessions", help="Where session files live"
    )
    p.add_argument(
        "--api-id", type=int, default=None, help="Also run initConnection + help.getConfig"
    )
    p.add_argument("--timeout", type=float, default=20.0, help="Timeout (seconds)")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = p.parse_args()
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
