"""
TIBET Rail CLI

Commands:
  serve   - Run the provenance server
  verify  - Verify a token in an exported store
  chain   - Print the provenance chain of a token in an exported store
  did     - Build a did:jis identifier from parts
  keygen  - Generate an Ed25519 key and DID document for a DID
"""

import argparse
import json
import os
import sys

import structlog


def _load_store(path):
    from .config import RailConfig

    store = RailConfig.from_env().build_store()
    with open(path, "r", encoding="utf-8") as f:
        blob = f.read()
    # /export wraps the pairs in {"entries": [...]}; export_all() does not
    data = json.loads(blob)
    if isinstance(data, dict):
        blob = json.dumps(data.get("entries", []))
    store.import_all(blob)
    return store


def cmd_serve(args):
    """Run the provenance server."""
    import uvicorn

    port = args.port or int(os.environ.get("PORT", 8000))
    host = args.host or "0.0.0.0"

    print(f"Starting TIBET Rail on {host}:{port}")

    uvicorn.run(
        "tibet_rail.api.server:app",
        host=host,
        port=port,
        reload=args.reload,
        workers=args.workers,
    )


def cmd_verify(args):
    """Verify a token in an exported store."""
    from .core.verifier import TokenVerifier

    try:
        store = _load_store(args.file)
    except (OSError, ValueError, KeyError, TypeError) as e:
        print(f"Error: cannot load {args.file}: {e}")
        sys.exit(1)

    verifier = TokenVerifier(store)
    if args.lineage:
        result = verifier.verify_lineage(args.token_id)
        print(json.dumps(result.to_dict(), indent=2))
    else:
        result = verifier.verify(args.token_id)
        print(f"Token: {result.token_id}")
        print(f"  Valid: {'Yes' if result.valid else 'No'}")
        print(f"  Trust score: {result.trust_score}")
        for facet, ok in result.details.to_dict().items():
            print(f"  {facet}: {'Yes' if ok else 'No'}")
        if result.error:
            print(f"  Error: {result.error}")

    if not result.valid:
        sys.exit(1)


def cmd_chain(args):
    """Print the provenance chain of a token."""
    from .core.chain import ChainWalker

    try:
        store = _load_store(args.file)
    except (OSError, ValueError, KeyError, TypeError) as e:
        print(f"Error: cannot load {args.file}: {e}")
        sys.exit(1)

    chain = ChainWalker(store).chain(args.token_id)
    if chain is None:
        print(f"Error: token not found: {args.token_id}")
        sys.exit(1)

    print(f"Chain of {chain.length} token(s), origin {chain.origin.token_id}")
    for token in chain.tokens:
        print(f"  {token.token_id}  {token.kind.value}  {token.state.value}  {token.actor}")
    if not chain.complete:
        print(f"Incomplete: {chain.break_reason}")


def cmd_did(args):
    """Build a did:jis identifier from parts."""
    from .identity.did import InvalidDIDError, create_did

    try:
        print(create_did(*args.parts))
    except InvalidDIDError as e:
        print(f"Error: {e}")
        sys.exit(1)


def cmd_keygen(args):
    """Generate a key pair and print its DID document."""
    from .identity.did import InvalidDIDError
    from .identity.keys import did_document_with_key, generate_did_key

    try:
        keypair = generate_did_key(args.did)
    except InvalidDIDError as e:
        print(f"Error: {e}")
        sys.exit(1)

    doc = did_document_with_key(
        keypair,
        consent_endpoint=args.consent_endpoint,
        tibet_endpoint=args.tibet_endpoint,
    )
    print(doc.to_json())
    if args.show_private:
        print(json.dumps(keypair.to_dict(include_private=True), indent=2))


def main(argv=None):
    # stdout carries command output; logs go to stderr
    structlog.configure(logger_factory=structlog.PrintLoggerFactory(file=sys.stderr))

    parser = argparse.ArgumentParser(
        description="TIBET Rail - Provenance tokens and bilateral consent",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the server")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.add_argument("--reload", action="store_true")
    serve_parser.add_argument("--workers", type=int, default=1)

    # verify
    verify_parser = subparsers.add_parser("verify", help="Verify a token from an export file")
    verify_parser.add_argument("file", help="Export file (JSON)")
    verify_parser.add_argument("token_id", help="Token to verify")
    verify_parser.add_argument("--lineage", action="store_true", help="Verify the whole chain")

    # chain
    chain_parser = subparsers.add_parser("chain", help="Show a token's provenance chain")
    chain_parser.add_argument("file", help="Export file (JSON)")
    chain_parser.add_argument("token_id", help="Token to walk from")

    # did
    did_parser = subparsers.add_parser("did", help="Build a did:jis identifier")
    did_parser.add_argument("parts", nargs="+", help="Identifier parts")

    # keygen
    keygen_parser = subparsers.add_parser("keygen", help="Generate a key and DID document")
    keygen_parser.add_argument("did", help="did:jis identifier")
    keygen_parser.add_argument("--consent-endpoint", default=None)
    keygen_parser.add_argument("--tibet-endpoint", default=None)
    keygen_parser.add_argument("--show-private", action="store_true")

    args = parser.parse_args(argv)

    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "verify":
        cmd_verify(args)
    elif args.command == "chain":
        cmd_chain(args)
    elif args.command == "did":
        cmd_did(args)
    elif args.command == "keygen":
        cmd_keygen(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
