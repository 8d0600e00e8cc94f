######################################################
#   Copyright (C) Microsoft. All rights reserved.    #
######################################################

from collections import namedtuple

import google.protobuf.text_format
from p4.v1 import p4runtime_pb2

from P4RTClient.Codec import encode_action, encode_match
from P4RTClient.Errors import SchemaMismatch

# P4Runtime priorities are positive int32 values; higher wins
MAX_PRIORITY = (1 << 31) - 1


class TableEntry(namedtuple('TableEntry', ['table_id', 'table_name', 'match', 'action',
                                           'priority', 'ttl', 'metadata'])):
    """
    A complete, already-encoded table entry.

    match is a tuple of wire FieldMatch messages (don't-care fields
    left out), action a wire TableAction. Entries are never changed
    after they are built; to update one, build a new entry and write
    it with a modify operation.
    """

    __slots__ = ()

    def to_proto(self):
        entry = p4runtime_pb2.TableEntry(table_id=self.table_id)
        for fm in self.match:
            entry.match.add().CopyFrom(fm)
        if self.action is not None:
            entry.action.CopyFrom(self.action)
        if self.priority is not None:
            entry.priority = self.priority
        if self.ttl is not None:
            entry.idle_timeout_ns = self.ttl
        if self.metadata:
            entry.metadata = self.metadata
        return entry

    @classmethod
    def from_proto(cls, entry, table_name=None):
        """Wrap a wire entry, e.g. one returned by a Read."""
        return cls(entry.table_id, table_name,
                   tuple(entry.match),
                   entry.action if entry.HasField('action') else None,
                   entry.priority or None,
                   entry.idle_timeout_ns or None,
                   entry.metadata)

    def key(self):
        """Identity of the entry on the device: table, match and priority."""
        return (self.table_id,
                tuple(sorted((fm.field_id, fm.SerializeToString(deterministic=True))
                             for fm in self.match)),
                self.priority or 0)

    def __str__(self):
        match = ' '.join(google.protobuf.text_format.MessageToString(fm, as_one_line=True)
                         for fm in self.match) or '*'
        return "<{} [{}] priority {}>".format(self.table_name or self.table_id, match, self.priority)


def build_entry(schema, table, matches, action, priority=None, ttl=None, metadata=b''):
    """
    Build a TableEntry for table (name or id) in schema.

    Raises UnknownTable for a table the schema does not declare,
    SchemaMismatch or InvalidPrefixLength when the key, action or
    metadata disagree with the table's declaration.
    """
    info = schema.table_get(table)

    match = tuple(encode_match(info, matches))
    table_action = encode_action(info, action)

    if info.needs_priority:
        if priority is None:
            raise SchemaMismatch("Table {} has ternary/range keys and needs a priority".format(info.name))
        if isinstance(priority, bool) or not isinstance(priority, int) \
           or priority < 1 or priority > MAX_PRIORITY:
            raise SchemaMismatch("Priority {} is out of range".format(priority))
    elif priority is not None:
        raise SchemaMismatch("Table {} has only exact/lpm keys; priority must not be set".format(info.name))

    if ttl is not None:
        if not info.supports_idle_timeout:
            raise SchemaMismatch("Table {} does not support idle timeouts".format(info.name))
        if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl < 0:
            raise SchemaMismatch("Idle timeout {} is not a non-negative integer".format(ttl))

    return TableEntry(info.id, info.name, match, table_action, priority, ttl, bytes(metadata or b''))
