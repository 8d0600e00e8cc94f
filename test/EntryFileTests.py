######################################################
#   Copyright (C) Microsoft. All rights reserved.    #
######################################################

"""
Tests for loading entries from YAML and for the command line.
"""

import os
import tempfile

from P4RTClient.EntryFile import load_entries, parse_match
from P4RTClient.Errors import InvalidPrefixLength, SchemaMismatch, UnknownTable
from P4RTClient.Installer import Operation
from P4RTClient.Match import MatchField, MatchType
from P4RTClient.p4rtclient import main, make_argparser

from P4RTClientTest import P4RTClientTest, ACL_ID, IPV4_LPM_ID

CONFIG_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), '..', 'config')


class EntryFileTest(P4RTClientTest):

    def load(self, text):
        with tempfile.NamedTemporaryFile('w', suffix='.yaml', delete=False) as f:
            f.write(text)
        try:
            return load_entries(self.schema, f.name)
        finally:
            os.unlink(f.name)

    def test_example_file(self):
        entries = load_entries(self.schema, os.path.join(CONFIG_DIR, 'entries.yaml'))
        self.assertEqual(len(entries), 4)
        self.assertTrue(all(op is Operation.INSERT for entry, op in entries))
        forward = entries[1][0].to_proto()
        self.assertEqual(forward.table_id, IPV4_LPM_ID)
        self.assertEqual(forward.match[0].lpm.value, b'\xc0\x00\x02\x02')
        self.assertEqual(forward.action.action.params[0].value, b'\x03\x02\x01\x00\x00\x00')

    def test_ternary_range_priority_and_operation(self):
        entries = self.load("""
entries:
  - table: MyIngress.acl
    match:
      hdr.ethernet.etherType: {ternary: [0x0800, 0xffff]}
      meta.l4_dst_port: {range: [1000, 2000]}
    action: MyIngress.drop
    priority: 10
    ttl: 1000000
    operation: modify
""")
        entry, operation = entries[0]
        self.assertIs(operation, Operation.MODIFY)
        proto = entry.to_proto()
        self.assertEqual(proto.table_id, ACL_ID)
        self.assertEqual(proto.priority, 10)
        self.assertEqual(proto.idle_timeout_ns, 1000000)
        self.assertEqual(proto.match[0].ternary.value, b'\x08\x00')

    def test_bare_value_is_exact(self):
        entries = self.load("""
entries:
  - table: MyIngress.mac_exact
    match:
      hdr.ethernet.dstAddr: "00:00:00:00:00:01"
    action: MyIngress.set_egress
    params: {port: 3}
""")
        self.assertEqual(entries[0][0].to_proto().match[0].exact.value, b'\x00\x00\x00\x00\x00\x01')

    def test_unquoted_mac(self):
        entries = self.load("""
entries:
  - table: MyIngress.ipv4_lpm
    match:
      hdr.ipv4.dstAddr: {lpm: [10.0.0.0, 8]}
    action: MyIngress.ipv4_forward
    params: {dstAddr: 10:22:33:44:55:06, port: 1}
  - table: MyIngress.mac_exact
    match:
      hdr.ethernet.dstAddr: 10:22:33:44:55:07
    action: MyIngress.set_egress
    params: {port: 0x1f}
""")
        forward = entries[0][0].to_proto()
        self.assertEqual(forward.action.action.params[0].value, b'\x10\x22\x33\x44\x55\x06')
        self.assertEqual(forward.action.action.params[1].value, b'\x00\x01')
        mac = entries[1][0].to_proto()
        self.assertEqual(mac.match[0].exact.value, b'\x10\x22\x33\x44\x55\x07')
        self.assertEqual(mac.action.action.params[0].value, b'\x00\x1f')

    def test_empty_file(self):
        self.assertEqual(self.load(""), [])

    def test_bad_entries(self):
        with self.assertRaises(UnknownTable):
            self.load("entries:\n  - {table: MyIngress.nope, match: {}, action: MyIngress.drop}\n")
        with self.assertRaises(InvalidPrefixLength):
            self.load("entries:\n  - {table: MyIngress.ipv4_lpm, match: {hdr.ipv4.dstAddr: {lpm: [10.0.0.0, 33]}}, "
                      "action: MyIngress.drop}\n")
        with self.assertRaises(SchemaMismatch):
            self.load("entries:\n  - {table: MyIngress.ipv4_lpm, match: {hdr.ipv4.dstAddr: {lpm: [10.0.0.0, 8]}}, "
                      "action: MyIngress.drop, operation: upsert}\n")

    def test_parse_match(self):
        self.assertEqual(parse_match("f", {"lpm": ["10.0.0.0", 8]}), MatchField.lpm("10.0.0.0", 8))
        self.assertIs(parse_match("f", 5).match_type, MatchType.EXACT)
        with self.assertRaises(SchemaMismatch):
            parse_match("f", {"lpm": ["10.0.0.0"]})
        with self.assertRaises(SchemaMismatch):
            parse_match("f", {"optional": [1, 2]})


class CommandLine(P4RTClientTest):
    """
    Defaults match the standard P4Runtime port and a five second wait.
    """

    def runTest(self):
        args = make_argparser().parse_args(['--bin', 'basic.json', '--p4info', 'basic.p4info.txt',
                                            '--cookie', '0x10'])
        self.assertEqual(args.grpc_port, 9559)
        self.assertEqual(args.device_id, 0)
        self.assertEqual(args.election_id, 1)
        self.assertEqual(args.cookie, 16)
        self.assertEqual(args.primary_timeout, 5.0)
        self.assertIsNone(args.entries)
        self.assertIsNone(args.batch_size)
        self.assertEqual(args.connect_timeout, 5.0)


class BadConfigurationExits(P4RTClientTest):
    """
    Unreadable or invalid inputs end the script with exit code 2 before
    any connection is made.
    """

    def write(self, text):
        with tempfile.NamedTemporaryFile('w', suffix='.txt', delete=False) as f:
            f.write(text)
        self.addCleanup(os.unlink, f.name)
        return f.name

    def runTest(self):
        program = self.write('{"program": "basic.p4"}')
        p4info = os.path.join(CONFIG_DIR, 'basic.p4info.txt')

        self.assertEqual(main(['--bin', '/nonexistent/basic.json', '--p4info', p4info]), 2)
        self.assertEqual(main(['--bin', program, '--p4info', self.write('tables { preamble {')]), 2)
        self.assertEqual(main(['--bin', program, '--p4info', p4info, '--election_id', '-1']), 2)
        self.assertEqual(main(['--bin', program, '--p4info', p4info, '--entries', '/nonexistent/entries.yaml']), 2)
        self.assertEqual(main(['--bin', program, '--p4info', p4info,
                               '--entries', self.write('entries: [table: MyIngress.nope')]), 2)
