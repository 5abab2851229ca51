#!/usr/bin/env python3
"""
Matching Pipeline
=================
Runs the matching stages for one event.

Flow:
1. compute-intents      Infer and store every approved participant's intent vector
2. classify-intents     (optional) Store an advisory AI intent classification
3. generate-embeddings  (optional) Embed profiles for semantic similarity
4. generate-matches     Score, rank and store match recommendations

Usage:
    python scripts/run_matching.py init-rules <event_id>
    python scripts/run_matching.py run-all <event_id> --with-embeddings
    python scripts/run_matching.py export-matches <event_id> --output matches.csv

Requirements:
    - SUPABASE_URL, SUPABASE_SERVICE_KEY environment variables
    - OPENAI_API_KEY for classify-intents and generate-embeddings
"""

import sys
import logging
import argparse
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

from directory_service import DirectoryService
from embedding_service import EmbeddingService
from errors import MatchingError
from intent_service import IntentService
from match_generator import MatchGenerator


def print_result(title: str, result: dict):
    print(f"\n{'='*50}")
    print(title)
    print(f"{'='*50}")
    for key, value in result.items():
        print(f"{key.replace('_', ' ').title()}: {value}")


def cmd_compute_intents(args, directory: DirectoryService):
    result = IntentService(directory_service=directory).compute_intents(args.event_id)
    print_result("Intent Computation", result)


def cmd_classify_intents(args, directory: DirectoryService):
    result = IntentService(directory_service=directory).classify_intents(args.event_id)
    print_result("AI Intent Classification", result)


def cmd_generate_embeddings(args, directory: DirectoryService):
    service = EmbeddingService(directory_service=directory)
    result = service.generate_for_event(args.event_id, force=args.force, batch_size=args.batch_size)
    print_result("Embedding Generation", result)


def cmd_generate_matches(args, directory: DirectoryService):
    result = MatchGenerator(directory_service=directory).generate_matches(args.event_id)
    print_result("Match Generation", result)


def cmd_intent_stats(args, directory: DirectoryService):
    result = IntentService(directory_service=directory).get_intent_stats(args.event_id)
    print_result("Intent Coverage", result)


def cmd_init_rules(args, directory: DirectoryService):
    result = directory.create_default_rules(args.event_id)
    if not result['success']:
        raise MatchingError(f"Could not create matching rules: {result['error']}")
    if result['created']:
        print(f"Created default matching rules for event {args.event_id}")
    else:
        print(f"Event {args.event_id} already has matching rules")


def cmd_export_matches(args, directory: DirectoryService):
    df = directory.export_matches_dataframe(args.event_id)
    df.to_csv(args.output, index=False)
    print(f"Exported {len(df)} matches to {args.output}")


def cmd_run_all(args, directory: DirectoryService):
    cmd_compute_intents(args, directory)
    if args.with_ai:
        cmd_classify_intents(args, directory)
        # recompute so the AI confidence bonus lands in the stored confidence
        cmd_compute_intents(args, directory)
    if args.with_embeddings:
        cmd_generate_embeddings(args, directory)
    cmd_generate_matches(args, directory)


COMMANDS = {
    'compute-intents': (cmd_compute_intents, "Compute intent vectors for approved participants"),
    'classify-intents': (cmd_classify_intents, "Store advisory AI intent classifications"),
    'generate-embeddings': (cmd_generate_embeddings, "Generate profile embeddings"),
    'generate-matches': (cmd_generate_matches, "Generate and store match recommendations"),
    'intent-stats': (cmd_intent_stats, "Show intent coverage for the event"),
    'init-rules': (cmd_init_rules, "Create default matching rules for the event"),
    'export-matches': (cmd_export_matches, "Export the event's matches to CSV"),
    'run-all': (cmd_run_all, "Compute intents, then generate matches"),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Intent scoring and match generation for event participants"
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Log at DEBUG level'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    for name, (_, help_text) in COMMANDS.items():
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('event_id', help='Event ID')

        if name in ('generate-embeddings', 'run-all'):
            sub.add_argument(
                '--force',
                action='store_true',
                help='Regenerate embeddings even when profile text is unchanged'
            )
            sub.add_argument(
                '--batch-size', '-b',
                type=int,
                default=None,
                help='Texts per embeddings request'
            )
        if name == 'run-all':
            sub.add_argument(
                '--with-ai',
                action='store_true',
                help='Also run AI intent classification'
            )
            sub.add_argument(
                '--with-embeddings',
                action='store_true',
                help='Also generate embeddings before matching'
            )
        if name == 'export-matches':
            sub.add_argument(
                '--output', '-o',
                default='matches.csv',
                help='Path to CSV file'
            )

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    handler, _ = COMMANDS[args.command]
    try:
        handler(args, DirectoryService(use_admin=True))
    except (MatchingError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"Fatal Error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
