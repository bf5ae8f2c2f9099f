import argparse
import os
import sys
import time
import unittest


class Tee(object):
    def __init__(self, *files):
        self.files = files
    def write(self, obj):
        for f in self.files:
            f.write(obj)
            f.flush()
    def flush(self):
        for f in self.files:
            f.flush()


def collect_tests(suite_or_test, found):
    if isinstance(suite_or_test, unittest.TestSuite):
        for test in suite_or_test:
            collect_tests(test, found)
    elif suite_or_test is not None:
        found.append(suite_or_test)
    return found


def print_summary(result, tests):
    print("\n\n" + "="*70)
    print(" " * 25 + "TEST SUITE SUMMARY")
    print("="*70)

    failures = {test.id() for test, _ in result.failures if test}
    errors = {test.id() for test, _ in result.errors if test}
    skipped = {test.id() for test, _ in result.skipped if test}
    passed_tests = [t for t in tests if t.id() not in failures | errors | skipped]

    print(f"\nTotal tests run: {result.testsRun}")
    print(f"Passed: {len(passed_tests)}")
    print(f"Failed: {len(failures)}")
    print(f"Errors: {len(errors)}")
    print(f"Skipped: {len(skipped)}")

    if result.failures:
        print("\n--- FAILED ---")
        for test, _ in result.failures:
            print(f"  [-] {test.__class__.__name__}.{test._testMethodName}")
    if result.errors:
        print("\n--- ERRORS ---")
        for test, _ in result.errors:
            print(f"  [E] {test.id()}")
    if result.skipped:
        print("\n--- SKIPPED ---")
        for test, reason in result.skipped:
            print(f"  [S] {test.__class__.__name__}.{test._testMethodName}: {reason}")
    print("\n" + "="*70)


def main(argv=None):
    """
    Discovers the tests in 'test_cases', optionally keeps only those whose id
    contains one of the given keywords, runs them and prints a summary.
    Console output is also saved under tests/output/.
    """
    parser = argparse.ArgumentParser(description="Run the project test suite")
    parser.add_argument("keywords", nargs="*", help="Only run tests whose id contains one of these")
    parser.add_argument("--list", action="store_true", help="List the tests and exit")
    args = parser.parse_args(argv)

    project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
    sys.path.insert(0, os.path.join(project_root, 'src'))

    loader = unittest.TestLoader()
    start_dir = os.path.join(os.path.dirname(__file__), 'test_cases')
    all_tests = sorted(collect_tests(loader.discover(start_dir=start_dir, pattern='test_*.py'), []),
                       key=lambda t: t.id())

    if args.list:
        for i, test in enumerate(all_tests):
            print(f"  [{i+1}] {test.id()}")
        return 0

    selected = [t for t in all_tests if not args.keywords or any(k in t.id() for k in args.keywords)]
    if not selected:
        print("No tests match the given keywords.")
        return 1

    run_output_dir = os.path.join(project_root, 'tests', 'output', f"test_run_{time.strftime('%Y%m%d_%H%M%S')}")
    os.makedirs(run_output_dir, exist_ok=True)
    log_file_path = os.path.join(run_output_dir, 'tst_console_out.txt')

    original_stdout, original_stderr = sys.stdout, sys.stderr
    with open(log_file_path, 'w') as log_file:
        sys.stdout = Tee(original_stdout, log_file)
        sys.stderr = Tee(original_stderr, log_file)
        try:
            result = unittest.TextTestRunner(verbosity=1).run(unittest.TestSuite(selected))
            print_summary(result, selected)
        finally:
            sys.stdout, sys.stderr = original_stdout, original_stderr

    print(f"\nFull console output saved to: {log_file_path}")
    return 0 if result.wasSuccessful() else 1


if __name__ == '__main__':
    sys.exit(main())
