######################################################
#   Copyright (C) Microsoft. All rights reserved.    #
######################################################

"""
Batch entry installer.

Writes are issued with CONTINUE_ON_ERROR, so the device attempts every
update in a batch and reports a status per update. Those per-update
failures come back as results; only a failure of the RPC as a whole is
raised.
"""

import logging
from collections import namedtuple
from enum import Enum

import grpc
from google.rpc import code_pb2
from google.rpc import status_pb2
from p4.v1 import p4runtime_pb2

from P4RTClient.Errors import (AlreadyExists, DeviceRejected, NotFound, ReadError,
                               SchemaViolation, WriteBatchError)


class Operation(Enum):
    INSERT = p4runtime_pb2.Update.INSERT
    MODIFY = p4runtime_pb2.Update.MODIFY
    DELETE = p4runtime_pb2.Update.DELETE


# canonical code -> per-entry error class
ENTRY_ERRORS = {
    code_pb2.ALREADY_EXISTS:   AlreadyExists,
    code_pb2.NOT_FOUND:        NotFound,
    code_pb2.INVALID_ARGUMENT: SchemaViolation,
    code_pb2.OUT_OF_RANGE:     SchemaViolation,
}

# status codes that mean the RPC itself failed, not the update in it
TRANSPORT_CODES = frozenset([
    grpc.StatusCode.UNKNOWN,
    grpc.StatusCode.CANCELLED,
    grpc.StatusCode.DEADLINE_EXCEEDED,
    grpc.StatusCode.UNAVAILABLE,
    grpc.StatusCode.PERMISSION_DENIED,
    grpc.StatusCode.UNAUTHENTICATED,
])


def entry_error(code, message):
    """Build the per-entry error for a canonical code, or None for OK."""
    if code == code_pb2.OK:
        return None
    cls = ENTRY_ERRORS.get(code, DeviceRejected)
    return cls(message, code)


def parse_write_errors(e):
    """Return the p4.v1.Error list carried in the RPC's status details, if any."""
    for key, value in e.trailing_metadata() or ():
        if key != 'grpc-status-details-bin':
            continue
        status = status_pb2.Status()
        status.ParseFromString(value)
        errors = []
        for detail in status.details:
            error = p4runtime_pb2.Error()
            if not detail.Unpack(error):
                return None
            errors.append(error)
        return errors
    return None


class WriteResult(namedtuple('WriteResult', ['entry', 'operation', 'error'])):
    __slots__ = ()

    @property
    def ok(self):
        return self.error is None

    def __str__(self):
        if self.ok:
            return "{} {}: OK".format(self.operation.name, self.entry)
        return "{} {}: {} {}".format(self.operation.name, self.entry,
                                     type(self.error).__name__, self.error)


class Installer(object):

    def __init__(self, stub, target, arbitration, max_batch_size=None):
        self.logger = logging.getLogger('Installer')
        self.stub = stub
        self.target = target
        self.arbitration = arbitration

        # None sends each batch as a single RPC
        self.max_batch_size = max_batch_size

    def insert(self, entries):
        return self.write([(e, Operation.INSERT) for e in entries])

    def modify(self, entries):
        return self.write([(e, Operation.MODIFY) for e in entries])

    def delete(self, entries):
        return self.write([(e, Operation.DELETE) for e in entries])

    def write(self, batch):
        """
        Write (entry, operation) pairs; return one WriteResult per pair, in order.

        Per-entry failures do not stop the rest of the batch. Raises
        NotPrimary if we are not primary and WriteBatchError if an RPC
        fails as a whole.
        """
        batch = list(batch)
        if not batch:
            return []

        size = self.max_batch_size or len(batch)
        results = []
        for start in range(0, len(batch), size):
            results.extend(self.write_rpc(batch[start:start + size]))

        for result in results:
            if result.ok:
                self.logger.info("Installed {}".format(result))
            else:
                self.logger.error("Cannot install {}".format(result))
        return results

    def write_rpc(self, batch):
        self.arbitration.require_primary()

        request = p4runtime_pb2.WriteRequest(
            device_id=self.target.device_id,
            election_id=self.target.election_id_proto(),
            atomicity=p4runtime_pb2.WriteRequest.CONTINUE_ON_ERROR)
        for entry, operation in batch:
            update = request.updates.add()
            update.type = operation.value
            update.entity.table_entry.CopyFrom(entry.to_proto())

        try:
            self.stub.Write(request)
        except grpc.RpcError as e:
            return self.batch_results(batch, e)

        return [WriteResult(entry, operation, None) for entry, operation in batch]

    def batch_results(self, batch, e):
        code = e.code()

        if code == grpc.StatusCode.UNKNOWN:
            errors = parse_write_errors(e)
            if errors is not None and len(errors) == len(batch):
                return [WriteResult(entry, operation, entry_error(error.canonical_code, error.message))
                        for (entry, operation), error in zip(batch, errors)]

        # a server may report the status of a lone update as the RPC status
        if len(batch) == 1 and code not in TRANSPORT_CODES:
            entry, operation = batch[0]
            return [WriteResult(entry, operation, entry_error(code.value[0], e.details()))]

        raise WriteBatchError("Write RPC of {} updates failed: {}".format(len(batch), e)) from e

    def read(self, table_id=0):
        """Read wire entries of one table, or of every table for table_id 0."""
        request = p4runtime_pb2.ReadRequest(device_id=self.target.device_id)
        request.entities.add().table_entry.table_id = table_id

        entries = []
        try:
            for response in self.stub.Read(request):
                for entity in response.entities:
                    if entity.HasField('table_entry'):
                        entries.append(entity.table_entry)
        except grpc.RpcError as e:
            raise ReadError("Read of table {} failed: {}".format(table_id, e)) from e
        return entries
