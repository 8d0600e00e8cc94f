######################################################
#   Copyright (C) Microsoft. All rights reserved.    #
######################################################

from collections import namedtuple
from enum import Enum

from p4.config.v1 import p4info_pb2


class MatchType(Enum):
    EXACT   = p4info_pb2.MatchField.EXACT
    LPM     = p4info_pb2.MatchField.LPM
    TERNARY = p4info_pb2.MatchField.TERNARY
    RANGE   = p4info_pb2.MatchField.RANGE


class MatchField(namedtuple('MatchField', ['match_type', 'value', 'mask', 'prefix_len', 'high'])):
    """
    Logical match on one key field.

    One variant per match type; build them with the classmethods below
    rather than the raw constructor. Values may be ints, bytes, or
    strings in IPv4, IPv6, MAC or integer notation; the codec turns
    them into field-width byte strings.
    """

    __slots__ = ()

    @classmethod
    def exact(cls, value):
        return cls(MatchType.EXACT, value, None, None, None)

    @classmethod
    def ternary(cls, value, mask):
        return cls(MatchType.TERNARY, value, mask, None, None)

    @classmethod
    def lpm(cls, value, prefix_len):
        return cls(MatchType.LPM, value, None, prefix_len, None)

    @classmethod
    def range(cls, low, high):
        return cls(MatchType.RANGE, low, None, None, high)

    @property
    def low(self):
        return self.value

    def __str__(self):
        if self.match_type is MatchType.EXACT:
            return "{}".format(self.value)
        elif self.match_type is MatchType.TERNARY:
            return "{} &&& {}".format(self.value, self.mask)
        elif self.match_type is MatchType.LPM:
            return "{}/{}".format(self.value, self.prefix_len)
        else:
            return "{}..{}".format(self.value, self.high)


# direct action: action name (or id) plus its parameters, either an
# ordered list or a dict keyed by parameter name
class ActionSpec(namedtuple('ActionSpec', ['action', 'params'])):
    __slots__ = ()

    def __new__(cls, action, params=None):
        return super(ActionSpec, cls).__new__(cls, action, params if params is not None else [])

    def __str__(self):
        return "{}({})".format(self.action, self.params)


# indirect action through an action profile; set exactly one of the ids
class ActionProfileRef(namedtuple('ActionProfileRef', ['member_id', 'group_id'])):
    __slots__ = ()

    def __new__(cls, member_id=None, group_id=None):
        return super(ActionProfileRef, cls).__new__(cls, member_id, group_id)

    def __str__(self):
        if self.group_id is not None:
            return "group {}".format(self.group_id)
        return "member {}".format(self.member_id)
