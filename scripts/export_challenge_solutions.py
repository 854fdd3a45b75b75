#!/usr/bin/env python3
"""
Export every challenge solution as a network JSON file.

Each solution goes through the same export path the server uses, is read
back through the importer, and is scored against its own target so the
catalogue can be checked at a glance.

Usage:
    python scripts/export_challenge_solutions.py [out_dir]

The script will:
1. Build the solution network of each challenge
2. Write it as <challenge_id>.json into out_dir (default: solutions/)
3. Re-import the file to verify it
4. Print the score of the solution against its target
"""

import os
import sys

from nnbuilder import codec
from nnbuilder.challenges import CHALLENGES, score_network
from nnbuilder.grid import is_matched
from nnbuilder.network import default_input_values


def export_solution(challenge, out_dir: str) -> str:
    """
    Write one challenge solution to disk.

    Parameters:
    -----------
    challenge : Challenge
        Catalogue entry whose solution is exported
    out_dir : str
        Directory receiving the file

    Returns:
    --------
    str
        Path of the written file

    Raises:
    -------
    RuntimeError
        If the solution fails export validation
    """
    result = codec.export_network(challenge.solution(), default_input_values())
    if not result.ok:
        raise RuntimeError(f"{challenge.id}: {result.error}")

    path = os.path.join(out_dir, f"{challenge.id}.json")
    with open(path, 'w', encoding='utf-8') as f:
        f.write(result.text)
    return path


def verify_solution(challenge, path: str) -> float:
    """
    Re-import an exported solution and score it.

    Returns:
    --------
    float
        Score of the re-imported network against the challenge target

    Raises:
    -------
    RuntimeError
        If the file no longer imports or differs from the built solution
    """
    result = codec.import_file(path)
    if not result.ok:
        raise RuntimeError(f"{challenge.id}: re-import failed: {result.error}")
    if not result.network.parameters_equal(challenge.solution()):
        raise RuntimeError(f"{challenge.id}: re-imported network differs from solution")
    return score_network(result.network, challenge.id)


def main():
    """Export and verify all challenge solutions."""
    print("=" * 60)
    print("Challenge Solution Export")
    print("=" * 60)

    out_dir = sys.argv[1] if len(sys.argv) > 1 else 'solutions'
    os.makedirs(out_dir, exist_ok=True)

    failures = 0
    for challenge in CHALLENGES:
        try:
            path = export_solution(challenge, out_dir)
            score = verify_solution(challenge, path)
        except RuntimeError as e:
            failures += 1
            print(f"❌ {e}")
            continue

        mark = "✅" if is_matched(score) else "⚠️ "
        print(f"{mark} {challenge.id:<24} {challenge.difficulty:<9} score {score:6.2f}  -> {path}")

    print("=" * 60)
    if failures:
        print(f"❌ {failures} solution(s) failed to export")
        sys.exit(1)
    print(f"✅ Exported {len(CHALLENGES)} solution(s) to {out_dir}")


if __name__ == '__main__':
    main()
