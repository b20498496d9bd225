#!/usr/bin/env python
"""
Run all tests for the Aviator co-pilot.

Usage (from repo root):
    python run_tests.py            # every tests/test_*.py
    python run_tests.py ledger     # only tests/test_ledger.py
"""

import subprocess
import sys
import os

def main():
    # Get the repo root (where this script lives)
    repo_root = os.path.dirname(os.path.abspath(__file__))
    tests_dir = os.path.join(repo_root, "tests")

    if not os.path.isdir(tests_dir):
        print(f"ERROR: Tests folder not found at {tests_dir}")
        sys.exit(1)

    pattern = "test_*.py"
    if len(sys.argv) > 1:
        pattern = f"test_{sys.argv[1]}.py"
        if not os.path.exists(os.path.join(tests_dir, pattern)):
            print(f"ERROR: Test file not found: tests/{pattern}")
            sys.exit(1)

    print("=" * 60)
    print(f"Running Co-Pilot Tests ({pattern})...")
    print("=" * 60)
    print()

    result = subprocess.run(
        [sys.executable, "-m", "unittest", "discover", "-s", "tests", "-p", pattern, "-v"],
        cwd=repo_root,
    )

    sys.exit(result.returncode)

if __name__ == "__main__":
    main()
