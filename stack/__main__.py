#!/usr/bin/env python3
"""
Main entry point for the stack package.

Smoke-test a running Llama Stack distribution from the command line.
"""

import argparse
import json
import logging
import sys

from stack_config import ToolkitConfig
from stack_utils import setup_logging

from .client import StackClient, StackClientError, documents_from_paths

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='python -m stack',
        description="Interact with a running Llama Stack server"
    )
    parser.add_argument("--stack-url", "-u", help="Llama Stack server URL (default: $LLAMA_STACK_URL)")
    parser.add_argument("--log-level", default=None, help="Logging level (default: $LOG_LEVEL or INFO)")
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    health_parser = subparsers.add_parser('health', help='Check /v1/health')
    health_parser.add_argument("--wait", action="store_true", help="Poll until the server is healthy")
    health_parser.add_argument("--timeout", type=float, help="Seconds to wait with --wait")

    providers_parser = subparsers.add_parser('providers', help='List providers')
    providers_parser.add_argument("--api", help="Only providers for this API")
    providers_parser.add_argument("--json", action="store_true", help="Output as JSON")

    subparsers.add_parser('models', help='List registered models')

    ingest_parser = subparsers.add_parser('ingest', help='Register a vector DB and insert files into it')
    ingest_parser.add_argument("vector_db_id", help="Vector DB identifier")
    ingest_parser.add_argument("files", nargs="+", help="Text files to insert")
    ingest_parser.add_argument("--embedding-model", default="all-MiniLM-L6-v2")
    ingest_parser.add_argument("--embedding-dimension", type=int, default=384)
    ingest_parser.add_argument("--provider-id", help="vector_io provider (default: server's choice)")
    ingest_parser.add_argument("--chunk-size", type=int, default=512, help="Chunk size in tokens")

    query_parser = subparsers.add_parser('query', help='Semantic query against a vector DB')
    query_parser.add_argument("vector_db_id", help="Vector DB identifier")
    query_parser.add_argument("query", help="Query text")
    query_parser.add_argument("--max-chunks", type=int, default=5)

    chat_parser = subparsers.add_parser('chat', help='Send a chat completion')
    chat_parser.add_argument("prompt", help="User message")
    chat_parser.add_argument("--model", "-m", help="Model ID (default: $INFERENCE_MODEL)")
    return parser


def run_command(args, client: StackClient, config: ToolkitConfig) -> int:
    if args.command == 'health':
        if args.wait:
            timeout = args.timeout if args.timeout is not None else config.health_timeout
            waited = client.wait_until_healthy(timeout=timeout, interval=config.health_interval)
            print(f"✅ {client.base_url} healthy after {waited:.1f}s")
            return 0
        status = client.health()
        print(json.dumps(status))
        return 0 if status.get('status') == 'OK' else 1

    if args.command == 'providers':
        providers = client.list_providers(api=args.api)
        if args.json:
            print(json.dumps({'providers': providers, 'count': len(providers)}, indent=2))
        else:
            for p in providers:
                print(f"{p['api']}\t{p['provider_id']}\t{p['provider_type']}")
        return 0

    if args.command == 'models':
        for model_id in client.list_models():
            print(model_id)
        return 0

    if args.command == 'ingest':
        client.register_vector_db(
            args.vector_db_id,
            embedding_model=args.embedding_model,
            embedding_dimension=args.embedding_dimension,
            provider_id=args.provider_id
        )
        count = client.insert_documents(
            args.vector_db_id,
            documents_from_paths(args.files),
            chunk_size_in_tokens=args.chunk_size
        )
        print(f"Inserted {count} document(s) into {args.vector_db_id}")
        return 0

    if args.command == 'query':
        for chunk in client.query(args.vector_db_id, args.query, max_chunks=args.max_chunks):
            score = f"{chunk.score:.3f}" if chunk.score is not None else "-"
            print(f"[{score}] {chunk.document_id or '?'}: {chunk.content[:200]}")
        return 0

    if args.command == 'chat':
        model_id = args.model or config.inference_model
        if not model_id:
            logger.error("No model given; pass --model or set INFERENCE_MODEL")
            return 1
        print(client.chat_completion(model_id, [{"role": "user", "content": args.prompt}]))
        return 0

    return 1


def main(argv=None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = ToolkitConfig.from_env()
    setup_logging(args.log_level or config.log_level, config.log_file)

    if not args.command:
        parser.print_help()
        return 0

    client = StackClient(base_url=args.stack_url or config.stack_url, timeout=config.client_timeout)
    try:
        return run_command(args, client, config)
    except StackClientError as e:
        logger.error(str(e))
        return 1
    except FileNotFoundError as e:
        logger.error(f"File not found: {e.filename}")
        return 1
    finally:
        client.close()


if __name__ == '__main__':
    sys.exit(main())
