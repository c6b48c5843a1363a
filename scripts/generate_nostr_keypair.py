#!/usr/bin/env python3
"""Generate a board creator identity for zapboard.

Usage: generate_nostr_keypair.py [LIGHTNING_ADDRESS]

Prints the npub/nsec pair plus the hex forms zapboard uses internally
(``sender_key`` for request_zap_tool). With a Lightning Address argument
it also prints the kind-0 profile content to publish under that key, so
that create_board_from_npub_tool can find a lud16 for the npub.

Requires: pip install zapboard[keygen]
"""

from __future__ import annotations

import json
import sys

try:
    from nostr_sdk import Keys
except ImportError:
    print("Error: nostr-sdk not installed. Run: pip install zapboard[keygen]", file=sys.stderr)
    sys.exit(1)

from zapboard.keys import npub_decode, public_key_hex


def creator_identity() -> dict[str, str]:
    keys = Keys.generate()
    identity = {
        "npub": keys.public_key().to_bech32(),
        "nsec": keys.secret_key().to_bech32(),
        "pubkey": keys.public_key().to_hex(),
        "secret": keys.secret_key().to_hex(),
    }
    # nostr-sdk and zapboard must agree on both encodings
    if npub_decode(identity["npub"]) != identity["pubkey"]:
        raise RuntimeError("npub does not decode to the generated public key")
    if public_key_hex(identity["secret"]) != identity["pubkey"]:
        raise RuntimeError("secret key does not derive the generated public key")
    return identity


def profile_content(lightning_address: str, name: str | None = None) -> str:
    if "@" not in lightning_address:
        raise ValueError(f"{lightning_address!r} is not a Lightning Address (user@domain)")
    profile = {"lud16": lightning_address}
    if name:
        profile["name"] = name
    return json.dumps(profile)


def main(argv: list[str]) -> int:
    identity = creator_identity()

    print(f"npub    {identity['npub']}")
    print(f"pubkey  {identity['pubkey']}")
    print()
    print("Keep these private (never commit them):")
    print(f"nsec    {identity['nsec']}")
    print(f"secret  {identity['secret']}")

    if argv:
        try:
            content = profile_content(argv[0], argv[0].split("@", 1)[0])
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2
        print()
        print("Kind-0 profile content for create_board_from_npub:")
        print(f"  {content}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
