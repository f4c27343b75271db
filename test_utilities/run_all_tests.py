"""Run all unit tests."""
import sys
import io
import importlib
from pathlib import Path

# Fix Windows console encoding
if sys.platform == 'win32':
    # Only wrap if not already wrapped
    if not isinstance(sys.stdout, io.TextIOWrapper) or sys.stdout.encoding != 'utf-8':
        sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
    if not isinstance(sys.stderr, io.TextIOWrapper) or sys.stderr.encoding != 'utf-8':
        sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

# Add test_utilities to path
sys.path.insert(0, str(Path(__file__).parent))

print("=" * 80)
print("Guild Boss Board - Test Suite")
print("=" * 80)
print()

# (name, module); every test_* function in the module is run
tests = [
    ("Timestamp Formatter", "test_timestamp"),
    ("Boss Snapshot", "test_snapshot"),
    ("Respawn Predictor", "test_predictor"),
    ("Durable Store", "test_store"),
    ("Overdue Tracker", "test_overdue"),
    ("Alert Scheduler", "test_alerts"),
    ("Announcer", "test_announcer"),
    ("Board Sorter", "test_sorter"),
    ("Quick Cut", "test_quick_cut"),
    ("Board Window", "test_board_window"),
    ("Dashboard Client", "test_client"),
    ("Respawn Engine", "test_engine"),
]

passed = 0
failed = 0

for test_name, test_module in tests:
    print(f"\nRunning {test_name} tests...")
    print("-" * 80)
    try:
        module = importlib.import_module(test_module)
    except Exception as e:
        print(f"[FAIL] {test_name} - could not import {test_module}: {e}")
        failed += 1
        continue
    test_funcs = [name for name in dir(module) if name.startswith('test_') and callable(getattr(module, name))]
    if not test_funcs:
        print(f"[FAIL] {test_name} tests FAILED - no test functions found in '{test_module}'")
        failed += 1
        continue
    for func_name in test_funcs:
        try:
            getattr(module, func_name)()
            passed += 1
            print(f"[PASS] {test_module}.{func_name}")
        except Exception as e:
            print(f"[FAIL] {test_module}.{func_name}: {e}")
            import traceback
            traceback.print_exc()
            failed += 1

print("\n" + "=" * 80)
print(f"Test Results: {passed} passed, {failed} failed")
print("=" * 80)

if failed > 0:
    sys.exit(1)
