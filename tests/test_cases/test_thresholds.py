import os
import shutil
import sys
import tempfile
import unittest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../../src')))

from can_decoder.log_scanner import SignalTable
from trigger_pipeline.thresholds import SignalThreshold, evaluate_thresholds, load_threshold_config

INPUT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..', 'input'))


def make_table(values):
    return SignalTable(values=values, timestamps=sorted(values))


class TestEvaluateThresholds(unittest.TestCase):

    def test_first_exceeding_timestamp_wins(self):
        table = make_table({10: {"angle": 10.0}, 20: {"angle": 35.0}})
        result = evaluate_thresholds(table, [SignalThreshold("Angle", "angle", 30)])
        self.assertTrue(result.exceeded)
        self.assertEqual(result.timestamp, 20)
        self.assertEqual(result.index, 1)
        self.assertEqual(result.value, 35.0)
        self.assertIn("Angle", result.reason)

    def test_timestamp_order_beats_threshold_order(self):
        thresholds = [SignalThreshold("A", "a", 5), SignalThreshold("B", "b", 5)]
        table = make_table({1: {"a": 0.0, "b": 9.0}, 2: {"a": 9.0, "b": 9.0}})
        result = evaluate_thresholds(table, thresholds)
        self.assertEqual((result.timestamp, result.index), (1, 2))

    def test_threshold_order_within_timestamp(self):
        thresholds = [SignalThreshold("A", "a", 5), SignalThreshold("B", "b", 5)]
        table = make_table({1: {"a": 9.0, "b": 9.0}})
        self.assertEqual(evaluate_thresholds(table, thresholds).index, 1)

    def test_strictly_greater(self):
        table = make_table({1: {"a": 30.0}})
        self.assertFalse(evaluate_thresholds(table, [SignalThreshold("A", "a", 30)]).exceeded)

    def test_missing_signal_never_exceeds(self):
        table = make_table({1: {"b": 100.0}})
        result = evaluate_thresholds(table, [SignalThreshold("A", "a", -1000)])
        self.assertFalse(result.exceeded)
        self.assertEqual(result.index, 0)

    def test_negative_thresholds(self):
        table = make_table({1: {"a": -5.0}})
        self.assertTrue(evaluate_thresholds(table, [SignalThreshold("A", "a", -10)]).exceeded)

    def test_empty_inputs(self):
        self.assertFalse(evaluate_thresholds(make_table({}), [SignalThreshold("A", "a", 1)]).exceeded)
        self.assertFalse(evaluate_thresholds(make_table({1: {"a": 5.0}}), []).exceeded)


class TestLoadThresholdConfig(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def write(self, text):
        path = os.path.join(self.temp_dir, 'can_sig.txt')
        with open(path, 'w') as f:
            f.write(text)
        return path

    def test_ordered_entries(self):
        path = self.write("# comment\nSteering,SAS_SteeringAngle,30\n\nSpeed , VCU_VehicleSpeed , 120.5\n")
        thresholds = load_threshold_config(path)
        self.assertEqual(thresholds, [
            SignalThreshold("Steering", "SAS_SteeringAngle", 30.0),
            SignalThreshold("Speed", "VCU_VehicleSpeed", 120.5),
        ])

    def test_malformed_line_reports_line_number(self):
        path = self.write("Steering,SAS_SteeringAngle,30\nbroken line\n")
        with self.assertRaisesRegex(ValueError, ":2:"):
            load_threshold_config(path)

    def test_invalid_threshold(self):
        path = self.write("Steering,SAS_SteeringAngle,high\n")
        with self.assertRaisesRegex(ValueError, "invalid threshold"):
            load_threshold_config(path)

    def test_shipped_configs_load(self):
        for queue_name in ("production", "test_drive", "media", "internal"):
            path = os.path.join(INPUT_DIR, f"can_sig_{queue_name}_car_triggers.txt")
            with self.subTest(queue=queue_name):
                self.assertTrue(load_threshold_config(path))


if __name__ == '__main__':
    unittest.main()
