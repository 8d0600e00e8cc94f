######################################################
#   Copyright (C) Microsoft. All rights reserved.    #
######################################################

import logging
from collections import namedtuple

import grpc
from p4.v1 import p4runtime_pb2
from p4.v1 import p4runtime_pb2_grpc

from P4RTClient.Errors import DeviceConnectionError

# IANA-assigned P4Runtime port
P4RUNTIME_PORT = 9559

UINT64_MASK = (1 << 64) - 1


class DeviceTarget(namedtuple('DeviceTarget', ['device_id', 'election_id'])):
    """Device id plus our 128-bit election id; the highest election id wins."""

    __slots__ = ()

    def __new__(cls, device_id=0, election_id=1):
        if device_id < 0 or device_id > UINT64_MASK:
            raise ValueError("Device id {} is not a 64-bit unsigned value".format(device_id))
        if election_id < 0 or election_id >= (1 << 128):
            raise ValueError("Election id {} is not a 128-bit unsigned value".format(election_id))
        return super(DeviceTarget, cls).__new__(cls, device_id, election_id)

    def election_id_proto(self):
        return p4runtime_pb2.Uint128(high=self.election_id >> 64,
                                     low=self.election_id & UINT64_MASK)

    def arbitration_request(self):
        request = p4runtime_pb2.StreamMessageRequest()
        request.arbitration.device_id = self.device_id
        request.arbitration.election_id.CopyFrom(self.election_id_proto())
        return request


def election_id_from_proto(uint128):
    return (uint128.high << 64) | uint128.low


class Client(object):
    """
    Connection to one P4Runtime device.

    Owns the gRPC channel and stub; everything else takes the stub and
    target from here. A ready-made stub may be passed in instead of an
    address, which is how tests plug in a fake device.
    """

    def __init__(self, address, target, stub=None):
        self.logger = logging.getLogger('Client')
        self.address = address
        self.target = target
        self.channel = None

        if stub is None:
            self.logger.info("Connecting to P4Runtime server at {}...".format(address))
            self.channel = grpc.insecure_channel(address)
            stub = p4runtime_pb2_grpc.P4RuntimeStub(self.channel)
        self.stub = stub

    def wait_ready(self, timeout):
        if self.channel is None:
            return
        try:
            grpc.channel_ready_future(self.channel).result(timeout=timeout)
        except grpc.FutureTimeoutError as e:
            raise DeviceConnectionError("Cannot connect to server at {} within {}s".format(
                self.address, timeout)) from e

    def capabilities(self):
        """Return the server's P4Runtime API version."""
        try:
            response = self.stub.Capabilities(p4runtime_pb2.CapabilitiesRequest())
        except grpc.RpcError as e:
            raise DeviceConnectionError("Error in Capabilities RPC: {}".format(e)) from e
        self.logger.info("P4Runtime server version is {}".format(response.p4runtime_api_version))
        return response.p4runtime_api_version

    def close(self):
        if self.channel is not None:
            self.channel.close()
            self.channel = None
