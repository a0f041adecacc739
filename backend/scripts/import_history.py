"""CLI script to load a quiz history export from the mobile client into the backend DB.
Usage: python scripts/import_history.py path/to/quiz_history.json [--dry-run]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `quizprogress` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from quizprogress.database import engine, create_db_and_tables
from quizprogress import services
from quizprogress.utils.history_import import parse_history_export


def main(path: pathlib.Path, dry_run: bool = False):
    """Parse `path` and store every valid result with its original timestamp.

    Results are replayed oldest first. On an empty database the streak
    ends up as if the quizzes had been recorded live; results older than
    the latest stored quiz are kept but leave the streak alone. Progress
    is printed to stdout.
    """
    if not path.exists():
        print(f'History file not found at {path}')
        return
    parsed, errors = parse_history_export(path.read_bytes())
    for err in errors:
        print(f"Skipped item {err['index']}: {err['error']}")
    if dry_run:
        print(f'Parsed {len(parsed)} results (dry run, nothing stored)')
        return
    create_db_and_tables()
    created = 0
    with Session(engine, expire_on_commit=False) as session:
        svc = services.QuizResultService(session)
        for payload, completed_at in parsed:
            try:
                svc.save_quiz_result(payload, now=completed_at)
                created += 1
            except ValueError as e:
                print(f'Rejected result from {completed_at.isoformat()}: {e}')
    print(f'Imported {created} results, skipped {len(errors) + len(parsed) - created}')


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('path', type=pathlib.Path, help='JSON export of the client quiz history')
    parser.add_argument('--dry-run', action='store_true', help='Parse and report without storing')
    args = parser.parse_args()
    main(args.path, dry_run=args.dry_run)
