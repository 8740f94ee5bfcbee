#!/usr/bin/env python3
"""
zerotrust Command Line Interface

Usage:
    zerotrust keygen [--key-type ed25519|secp256k1] [--username NAME] [--output FILE]
    zerotrust login-request --keys FILE
    zerotrust build-request --keys FILE --token TOKEN --data FILE [--target-size N]
    zerotrust demo
"""

import argparse
import json
import sys
from typing import List, Optional


def load_json(path: str) -> dict:
    """Load JSON from file."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def save_json(data: dict, path: str):
    """Save JSON to file."""
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2)


def _builder(args):
    from zerotrust.client import RequestBuilder

    keys = load_json(args.keys)
    return RequestBuilder(
        username=keys["username"],
        private_key_hex=keys["private_key"],
        key_type=keys.get("key_type", "ed25519"),
        target_size=getattr(args, "target_size", None) or 4096,
    )


def cmd_keygen(args):
    """Generate a user key pair."""
    from zerotrust.signing import generate_keypair

    pair = generate_keypair(args.key_type)
    keys = {"username": args.username, **pair.to_dict()}

    if args.output:
        save_json(keys, args.output)
        print(f"Key file saved to: {args.output}")
    else:
        print(json.dumps(keys, indent=2))

    print(f"\nPublic key ({pair.key_type}): {pair.public_key}", file=sys.stderr)
    return 0


def cmd_login_request(args):
    """Print a signed login proof."""
    print(json.dumps(_builder(args).login_request(), indent=2))
    return 0


def cmd_build_request(args):
    """Print a signed, padded request."""
    data = load_json(args.data)
    if not isinstance(data, dict):
        print("✗ --data must contain a JSON object", file=sys.stderr)
        return 1
    print(json.dumps(_builder(args).build_request(args.token, data), indent=2))
    return 0


def cmd_demo(args):
    """Run the full login -> transfer flow in process."""
    from zerotrust import (
        CredentialAuthority,
        InMemoryLedger,
        LoginService,
        ProtocolConfig,
        PublicKeyResolver,
        RequestBuilder,
        StaticSecretProvider,
        VerificationPipeline,
        build_gateway_metadata,
        generate_keypair,
        seal,
        wrap,
    )

    config = ProtocolConfig()
    secrets = StaticSecretProvider({
        config.gateway_secret_name: "demo-gateway-secret",
        config.credential_secret_name: "demo-credential-secret-change-me-in-prod",
    })
    ledger = InMemoryLedger()
    alice = generate_keypair()
    ledger.register_identity("alice", alice.public_key, initial_balance=10_000)
    ledger.register_identity("bob", generate_keypair().public_key, initial_balance=0)

    authority = CredentialAuthority(secrets, ttl_seconds=config.credential_ttl_seconds)
    resolver = PublicKeyResolver(ledger, max_credential_ttl=config.credential_ttl_seconds)
    resolver.attach(ledger)
    pipeline = VerificationPipeline(config, secrets, authority, resolver)
    login = LoginService(ledger, authority)

    print("=" * 60)
    print("zerotrust Protocol Demonstration")
    print("=" * 60)

    client = RequestBuilder("alice", alice.private_key)
    proof = client.login_request()
    result = login.login(proof["username"], proof["timestamp"], proof["signature"])
    print(f"\nLogged in as {result.username} (id {result.user_id})")

    request = client.build_request(result.token, {"action": "transfer", "receiver": "bob", "amount": 500})
    envelope = wrap(request, build_gateway_metadata("transfer", config.gateway_id, "127.0.0.1"))
    decision = pipeline.verify(seal(envelope, secrets.get(config.gateway_secret_name)))

    print("\n" + "-" * 60)
    print("Transfer alice -> bob: 500")
    print("-" * 60)
    print(f"Accepted: {decision.accepted}")
    print(f"Passed layers: {decision.passed_layers}")
    if decision.accepted:
        ledger.apply_transfer("alice", decision.payload["receiver"], decision.payload["amount"])
        print(f"Balances: alice={ledger.balance('alice')} bob={ledger.balance('bob')}")

    print("\n" + "=" * 60)
    print("Demonstration complete.")
    print("=" * 60)
    resolver.close()
    return 0 if decision.accepted else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="zerotrust",
        description="zerotrust Protocol CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  zerotrust keygen --username alice -o alice.json
  zerotrust login-request -k alice.json
  zerotrust build-request -k alice.json -t <token> -d transfer.json
  zerotrust demo
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # keygen
    keygen_parser = subparsers.add_parser("keygen", help="Generate user key pair")
    keygen_parser.add_argument("-t", "--key-type", default="ed25519", choices=["ed25519", "secp256k1"])
    keygen_parser.add_argument("-u", "--username", default="user", help="Username stored with the keys")
    keygen_parser.add_argument("-o", "--output", help="Output key file")

    # login-request
    login_parser = subparsers.add_parser("login-request", help="Build a signed login proof")
    login_parser.add_argument("-k", "--keys", required=True, help="Key file from keygen")

    # build-request
    build_parser = subparsers.add_parser("build-request", help="Build a signed, padded request")
    build_parser.add_argument("-k", "--keys", required=True, help="Key file from keygen")
    build_parser.add_argument("-t", "--token", required=True, help="Credential from login")
    build_parser.add_argument("-d", "--data", required=True, help="Logical payload JSON file")
    build_parser.add_argument("-s", "--target-size", type=int, default=4096, help="Padded size in bytes")

    # demo
    subparsers.add_parser("demo", help="Run demonstration")

    args = parser.parse_args(argv)

    if args.command == "keygen":
        return cmd_keygen(args)
    elif args.command == "login-request":
        return cmd_login_request(args)
    elif args.command == "build-request":
        return cmd_build_request(args)
    elif args.command == "demo":
        return cmd_demo(args)
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
