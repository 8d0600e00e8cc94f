######################################################
#   Copyright (C) Microsoft. All rights reserved.    #
######################################################

import logging
from collections import namedtuple
from pprint import pformat

import google.protobuf.text_format
from p4.config.v1 import p4info_pb2

from P4RTClient.Errors import SchemaMismatch, UnknownTable
from P4RTClient.Match import MatchType


FieldInfo = namedtuple('FieldInfo', ['id', 'name', 'bitwidth', 'match_type'])
ParamInfo = namedtuple('ParamInfo', ['id', 'name', 'bitwidth'])

# match types that force the entry to carry a priority
PRIORITY_MATCH_TYPES = (p4info_pb2.MatchField.TERNARY,
                        p4info_pb2.MatchField.RANGE,
                        p4info_pb2.MatchField.OPTIONAL)


def byte_width(bitwidth):
    return (bitwidth + 7) // 8


class ActionInfo(object):

    def __init__(self, action):
        self.id = action.preamble.id
        self.name = action.preamble.name
        self.alias = action.preamble.alias
        self.params = [ParamInfo(p.id, p.name, p.bitwidth) for p in action.params]

    def __str__(self):
        return "<Action {} id {} params {}>".format(
            self.name, self.id, [(p.name, p.bitwidth) for p in self.params])


class TableInfo(object):

    def __init__(self, schema, table):
        self.schema = schema
        self.id = table.preamble.id
        self.name = table.preamble.name
        self.alias = table.preamble.alias
        self.size = table.size

        # key shape, in declaration order; match types outside the
        # four supported kinds are kept as None
        self.fields = []
        for mf in table.match_fields:
            try:
                match_type = MatchType(mf.match_type)
            except ValueError:
                match_type = None
            self.fields.append(FieldInfo(mf.id, mf.name, mf.bitwidth, match_type))

        self.needs_priority = any(mf.match_type in PRIORITY_MATCH_TYPES
                                  for mf in table.match_fields)
        self.action_ids = set(ref.id for ref in table.action_refs)
        self.implementation_id = table.implementation_id
        self.supports_idle_timeout = (table.idle_timeout_behavior
                                      != p4info_pb2.Table.NO_TIMEOUT)

    def action_get(self, action):
        """Look up an action by name or id, checking this table may use it."""
        info = self.schema.action_get(action)
        if info.id not in self.action_ids:
            raise SchemaMismatch("Action {} is not permitted in table {}".format(
                info.name, self.name))
        return info

    def __str__(self):
        return "<Table {} id {} key {}>".format(
            self.name, self.id, [(f.name, f.bitwidth, f.match_type) for f in self.fields])


class Schema(object):
    """
    Lookup layer over an already-parsed P4Info message.

    Tables and actions can be found by fully qualified name, by alias,
    or by numeric id.
    """

    def __init__(self, p4info):
        self.logger = logging.getLogger('Schema')
        self.p4info = p4info

        self.tables = {}
        self.actions = {}
        self.table_names = {}
        self.action_names = {}

        for action in p4info.actions:
            info = ActionInfo(action)
            self.actions[info.id] = info
            self.action_names[info.name] = info
            if info.alias:
                self.action_names.setdefault(info.alias, info)

        for table in p4info.tables:
            info = TableInfo(self, table)
            self.tables[info.id] = info
            self.table_names[info.name] = info
            if info.alias:
                self.table_names.setdefault(info.alias, info)

        self.logger.debug("Loaded tables:\n{}".format(pformat(sorted(self.table_names))))

    @staticmethod
    def find(names, name):
        """Look up by full name or alias, then by a unique dotted suffix."""
        info = names.get(name)
        if info is not None:
            return info
        found = set(i for full, i in names.items() if full.endswith('.' + name))
        if len(found) == 1:
            return found.pop()
        return None

    @classmethod
    def load(cls, path):
        return cls(load_p4info(path))

    def table_get(self, table):
        if isinstance(table, int):
            info = self.tables.get(table)
        else:
            info = self.find(self.table_names, table)
        if info is None:
            raise UnknownTable("Table {} is not in the P4Info".format(table))
        return info

    def action_get(self, action):
        if isinstance(action, int):
            info = self.actions.get(action)
        else:
            info = self.find(self.action_names, action)
        if info is None:
            raise SchemaMismatch("Action {} is not in the P4Info".format(action))
        return info


def load_p4info(path):
    """Read a P4Info file; text format for .txt/.pbtxt, binary otherwise."""
    p4info = p4info_pb2.P4Info()
    if path.endswith('.txt') or path.endswith('.pbtxt'):
        with open(path) as f:
            google.protobuf.text_format.Merge(f.read(), p4info)
    else:
        with open(path, 'rb') as f:
            p4info.ParseFromString(f.read())
    return p4info
