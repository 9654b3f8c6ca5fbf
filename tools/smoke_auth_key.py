from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from telewire.client.mtproto import TEST_DCS, default_transport_factory
from telewire.mtproto.auth.handshake import AuthHandshakeError, exchange_auth_key
from telewire.mtproto.transport.base import Endpoint, TransportError
from telewire.tl.schema import build_registry


async def _run(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.host is not None:
        host, port = args.host, args.port
    else:
        host, port = TEST_DCS[args.dc]

    transport = default_transport_factory(Endpoint(host=host, port=port))
    await transport.connect()
    try:
        res = await asyncio.wait_for(
            exchange_auth_key(transport, registry=build_registry(), dc_id=args.dc + 10000),
            timeout=args.timeout,
        )
    except asyncio.TimeoutError:
        print(f"Timed out after {args.timeout:.1f}s while exchanging auth_key")
        return 1
    except (AuthHandshakeError, TransportError) as e:
        print(f"Auth key exchange failed: {e!r}")
        return 1
    finally:
        await transport.close()

    summary = {
        "endpoint": {"host": host, "port": port},
        "rsa_fingerprint_hex": f"0x{res.rsa_fingerprint & (2**64 - 1):016x}",
        "auth_key_id_hex": f"0x{res.auth_key_id:016x}",
        "server_salt_hex": res.server_salt.hex(),
        "server_time": res.server_time,
        "time_offset": res.time_offset,
        "dh_retries": res.retries,
    }

    if args.out is not None:
        out_path = Path(args.out)
        out_path.write_text(json.dumps(summary, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        print(f"Wrote auth key info to {out_path}")
    else:
        print(json.dumps(summary, indent=2, sort_keys=True))
    return 0


def main() -> int:
    p = argparse.ArgumentParser(description="Smoke-test the MTProto auth key exchange (test DCs).")
    p.add_argument(
        "--dc",
        type=int,
        choices=sorted(TEST_DCS.keys()),
        default=2,
        help="Test DC number",
    )
    p.add_argument("--host", type=str, default=None, help="Override host (disables --dc mapping)")
    p.add_argument("--port", type=int, default=443, help="Port (when using --host)")
    p.add_argument("--timeout", type=float, default=30.0, help="Overall timeout (seconds)")
    p.add_argument("--out", type=str, default=None, help="Write JSON output to this path")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = p.parse_args()

    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
