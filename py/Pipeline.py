######################################################
#   Copyright (C) Microsoft. All rights reserved.    #
######################################################

import hashlib
import logging
from collections import namedtuple

import grpc
from p4.v1 import p4runtime_pb2

from P4RTClient.Errors import PipelinePushError
from P4RTClient.Schema import load_p4info


def make_cookie(device_config, p4info):
    """Derive a 64-bit cookie from the device blob and the serialized P4Info."""
    digest = hashlib.sha256()
    digest.update(device_config)
    digest.update(p4info.SerializeToString(deterministic=True))
    return int.from_bytes(digest.digest()[:8], byteorder='big')


class PipelineConfig(namedtuple('PipelineConfig', ['device_config', 'p4info', 'cookie'])):
    """Compiled program blob, its P4Info, and the cookie identifying the pair."""

    __slots__ = ()

    def __new__(cls, device_config, p4info, cookie=None):
        if cookie is None:
            cookie = make_cookie(device_config, p4info)
        return super(PipelineConfig, cls).__new__(cls, bytes(device_config), p4info, cookie)

    @classmethod
    def load(cls, bin_path, p4info_path, cookie=None):
        with open(bin_path, 'rb') as f:
            device_config = f.read()
        return cls(device_config, load_p4info(p4info_path), cookie)

    def to_proto(self):
        config = p4runtime_pb2.ForwardingPipelineConfig()
        config.p4info.CopyFrom(self.p4info)
        config.p4_device_config = self.device_config
        config.cookie.cookie = self.cookie
        return config


PipelineAck = namedtuple('PipelineAck', ['cookie', 'pushed'])


class Pipeline(object):

    def __init__(self, stub, target, arbitration):
        self.logger = logging.getLogger('Pipeline')
        self.stub = stub
        self.target = target
        self.arbitration = arbitration

    def device_cookie(self):
        """Cookie of the pipeline the device holds now, or None if unknown."""
        request = p4runtime_pb2.GetForwardingPipelineConfigRequest(
            device_id=self.target.device_id,
            response_type=p4runtime_pb2.GetForwardingPipelineConfigRequest.COOKIE_ONLY)
        try:
            response = self.stub.GetForwardingPipelineConfig(request)
        except grpc.RpcError as e:
            self.logger.debug("Could not read pipeline cookie: {}".format(e))
            return None
        if not response.config.HasField('cookie'):
            return None
        return response.config.cookie.cookie

    def push(self, config):
        """
        Install config on the device unless it already holds the same cookie.

        Raises NotPrimary if we are not primary and PipelinePushError if
        the device refuses the pipeline.
        """
        self.arbitration.require_primary()

        if self.device_cookie() == config.cookie:
            self.logger.info("Device already has pipeline with cookie {:#x}".format(config.cookie))
            return PipelineAck(config.cookie, False)

        self.logger.info("Setting forwarding pipeline with cookie {:#x}".format(config.cookie))
        request = p4runtime_pb2.SetForwardingPipelineConfigRequest(
            device_id=self.target.device_id,
            election_id=self.target.election_id_proto(),
            action=p4runtime_pb2.SetForwardingPipelineConfigRequest.VERIFY_AND_COMMIT,
            config=config.to_proto())
        try:
            self.stub.SetForwardingPipelineConfig(request)
        except grpc.RpcError as e:
            raise PipelinePushError("Error when setting forwarding pipeline: {}".format(e)) from e

        self.logger.info("Forwarding pipeline set")
        return PipelineAck(config.cookie, True)
