######################################################
#   Copyright (C) Microsoft. All rights reserved.    #
######################################################

"""
This is the base class for testing the P4Runtime client.

Tests run against FakeDevice, which stands in for the gRPC stub, so
no switch or P4Runtime server is needed.
"""

import logging
import threading
import time
import unittest

from p4.config.v1 import p4info_pb2

from P4RTClient.Arbitration import Arbitration
from P4RTClient.Client import Client, DeviceTarget
from P4RTClient.Installer import Installer
from P4RTClient.Ipv4Lpm import Ipv4Lpm
from P4RTClient.Pipeline import Pipeline, PipelineConfig
from P4RTClient.Schema import Schema

from FakeDevice import FakeDevice

# init logging
logger = logging.getLogger('Test')

# log at info level
logging.basicConfig(level=logging.INFO)

IPV4_LPM_ID     = 37375156
ACL_ID          = 40000001
MAC_EXACT_ID    = 40000002
NO_ACTION_ID    = 21257015
DROP_ID         = 25652968
IPV4_FORWARD_ID = 28792405
SET_EGRESS_ID   = 30000001
PROFILE_ID      = 50000001


def add_action(p4info, action_id, name, params=()):
    action = p4info.actions.add()
    action.preamble.id = action_id
    action.preamble.name = name
    action.preamble.alias = name.split('.')[-1]
    for index, (param_name, bitwidth) in enumerate(params):
        param = action.params.add()
        param.id = index + 1
        param.name = param_name
        param.bitwidth = bitwidth


def add_table(p4info, table_id, name, fields, action_ids, size=1024):
    table = p4info.tables.add()
    table.preamble.id = table_id
    table.preamble.name = name
    table.preamble.alias = name.split('.')[-1]
    for index, (field_name, bitwidth, match_type) in enumerate(fields):
        mf = table.match_fields.add()
        mf.id = index + 1
        mf.name = field_name
        mf.bitwidth = bitwidth
        mf.match_type = match_type
    for action_id in action_ids:
        table.action_refs.add().id = action_id
    table.size = size
    return table


def make_p4info():
    """Basic IPv4 router tables plus an ACL and an exact-match table."""
    p4info = p4info_pb2.P4Info()
    p4info.pkg_info.arch = "v1model"

    add_action(p4info, NO_ACTION_ID, "NoAction")
    add_action(p4info, DROP_ID, "MyIngress.drop")
    add_action(p4info, IPV4_FORWARD_ID, "MyIngress.ipv4_forward", [("dstAddr", 48), ("port", 9)])
    add_action(p4info, SET_EGRESS_ID, "MyIngress.set_egress", [("port", 9)])

    add_table(p4info, IPV4_LPM_ID, "MyIngress.ipv4_lpm",
              [("hdr.ipv4.dstAddr", 32, p4info_pb2.MatchField.LPM)],
              [IPV4_FORWARD_ID, DROP_ID, NO_ACTION_ID])

    acl = add_table(p4info, ACL_ID, "MyIngress.acl",
                    [("hdr.ethernet.etherType", 16, p4info_pb2.MatchField.TERNARY),
                     ("meta.l4_dst_port", 16, p4info_pb2.MatchField.RANGE)],
                    [DROP_ID, NO_ACTION_ID], size=256)
    acl.idle_timeout_behavior = p4info_pb2.Table.NOTIFY_CONTROL

    mac = add_table(p4info, MAC_EXACT_ID, "MyIngress.mac_exact",
                    [("hdr.ethernet.dstAddr", 48, p4info_pb2.MatchField.EXACT)],
                    [SET_EGRESS_ID, DROP_ID])
    mac.implementation_id = PROFILE_ID

    return p4info


class P4RTClientTest(unittest.TestCase):

    def setUp(self):
        self.p4info    = make_p4info()
        self.schema    = Schema(self.p4info)
        self.device    = FakeDevice(device_id=0)
        self.target    = DeviceTarget(device_id=0, election_id=10)
        self.client    = Client("fake:9559", self.target, stub=self.device)

        self.stop_event = threading.Event()
        self.arbitrations = []

    def tearDown(self):
        self.stop_event.set()
        for arbitration in self.arbitrations:
            arbitration.stop(timeout=2.0)

    def start_arbitration(self, target=None):
        arbitration = Arbitration(self.device, target or self.target, self.stop_event, poll_interval=0.01)
        self.arbitrations.append(arbitration)
        arbitration.start()
        return arbitration

    def become_primary(self, target=None):
        arbitration = self.start_arbitration(target)
        self.assertTrue(arbitration.wait_for_primary(2.0))
        return arbitration

    def make_config(self, cookie=None):
        return PipelineConfig(b'{"program": "basic.p4"}', self.p4info, cookie)

    def configured_installer(self, max_batch_size=None):
        """Primary arbitration, pushed pipeline, and an installer on top."""
        arbitration = self.become_primary()
        Pipeline(self.device, self.target, arbitration).push(self.make_config())
        return Installer(self.device, self.target, arbitration, max_batch_size=max_batch_size)

    def ipv4_lpm(self):
        return Ipv4Lpm(self.schema)

    def wait_until(self, predicate, timeout=2.0):
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() > deadline:
                self.fail("Timed out waiting for condition")
            time.sleep(0.005)
