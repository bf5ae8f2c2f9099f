import os
import shutil
import sys
import tempfile
import unittest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../../src')))

from can_decoder.capture import (
    CAPTURE_RECORD_FORMAT, CaptureParser, pack_record, parse_capture, unpack_record
)
from can_decoder.dbc import load_file
from can_decoder.errors import CaptureError, UnknownMessageError

TEST_DATA_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'test_data'))


class TestCaptureParser(unittest.TestCase):

    def setUp(self):
        self.dictionary = load_file(os.path.join(TEST_DATA_DIR, 'steering_angle.dbc'))
        self.parser = CaptureParser(self.dictionary)
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_record_size(self):
        self.assertEqual(CAPTURE_RECORD_FORMAT.size, 21)

    def test_unpack_record(self):
        timestamp, msg = unpack_record(pack_record(1_500_000, 688, bytes.fromhex("015E32")))
        self.assertEqual(timestamp, 1_500_000)
        self.assertEqual(msg.arbitration_id, 688)
        self.assertEqual(bytes(msg.data), bytes.fromhex("015E32"))
        self.assertAlmostEqual(msg.timestamp, 1.5)

    def test_binary_capture(self):
        path = os.path.join(self.temp_dir, 'capture.bin')
        with open(path, 'wb') as f:
            f.write(pack_record(100, 688, bytes.fromhex("015E320000000000")))
            f.write(pack_record(200, 0x7FF, bytes(8)))  # not in the DBC
            f.write(pack_record(300, 1001, bytes.fromhex("881324FAD0070000")))
            f.write(b"\x00\x01\x02")  # truncated trailing record

        rows = self.parser.parse_capture(path, "VIN123", "A")
        self.assertEqual([row.timestamp for row in rows], [100, 300])
        self.assertEqual(rows[0].vehicle_id, "VIN123")
        self.assertEqual(rows[0].vehicle_type, "A")
        self.assertAlmostEqual(rows[0].signals["SAS_SteeringAngle"], 35.0)
        self.assertAlmostEqual(rows[1].signals["VCU_VehicleSpeed"], 50.0)
        self.assertEqual(rows[1].to_dict()["raw_data"], "881324fad0070000")

    def test_short_frame_is_skipped(self):
        path = os.path.join(self.temp_dir, 'capture.bin')
        with open(path, 'wb') as f:
            f.write(pack_record(100, 688, bytes.fromhex("015E")))
        self.assertEqual(self.parser.parse_capture(path, "VIN123", "A"), [])

    def test_text_capture(self):
        rows = parse_capture(os.path.join(TEST_DATA_DIR, 'steering_sample.log'), "VIN9", "B", self.dictionary)
        self.assertEqual([row.timestamp for row in rows], [10, 10, 20, 30])

    def test_missing_file(self):
        with self.assertRaises(CaptureError):
            self.parser.parse_capture(os.path.join(self.temp_dir, 'nope.bin'), "VIN", "A")

    def test_parse_stream(self):
        row = self.parser.parse_stream(pack_record(42, 688, bytes.fromhex("FF83000000000000")), "VIN", "C")
        self.assertEqual(row.timestamp, 42)
        self.assertAlmostEqual(row.signals["SAS_SteeringAngle"], -12.5)

    def test_parse_stream_errors(self):
        with self.assertRaises(CaptureError):
            self.parser.parse_stream(b"\x00" * 5, "VIN", "C")
        with self.assertRaises(UnknownMessageError):
            self.parser.parse_stream(pack_record(1, 0x7FF, bytes(8)), "VIN", "C")


if __name__ == '__main__':
    unittest.main()
