######################################################
#   Copyright (C) Microsoft. All rights reserved.    #
######################################################

"""
Match/action codec.

Turns logical match fields and action specs into the wire form a
specific table expects, validated against the table's schema. Nothing
here talks to the device.
"""

import ipaddress
import logging
import re

from p4.v1 import p4runtime_pb2

from P4RTClient.Errors import InvalidPrefixLength, SchemaMismatch
from P4RTClient.Match import ActionProfileRef, ActionSpec, MatchField, MatchType
from P4RTClient.Schema import byte_width

logger = logging.getLogger('Codec')

MAC_RE = re.compile(r'^[0-9a-fA-F]{2}([:-][0-9a-fA-F]{2}){5}$')


def parse_string(value, name):
    """Convert MAC, IPv4/IPv6 or integer strings to an int."""
    value = value.strip()
    if MAC_RE.match(value):
        return int(value.replace(':', '').replace('-', ''), 16)
    try:
        return int(ipaddress.ip_address(value))
    except ValueError:
        pass
    try:
        return int(value, 0)
    except ValueError:
        raise SchemaMismatch("Cannot parse '{}' for {}".format(value, name))


def value_to_int(value, bitwidth, name):
    width = byte_width(bitwidth)

    if isinstance(value, bool):
        raise SchemaMismatch("Boolean is not a valid value for {}".format(name))
    elif isinstance(value, int):
        number = value
        if number < 0:
            raise SchemaMismatch("Negative value {} for {}".format(value, name))
    elif isinstance(value, (bytes, bytearray)):
        # shorter byte strings are left-padded; longer ones are never truncated
        if len(value) > width:
            raise SchemaMismatch("Value for {} is {} bytes but the field is {} bytes wide".format(
                name, len(value), width))
        number = int.from_bytes(value, byteorder='big')
    elif isinstance(value, str):
        number = parse_string(value, name)
    else:
        raise SchemaMismatch("Unsupported value type {} for {}".format(type(value).__name__, name))

    if number >= (1 << bitwidth):
        raise SchemaMismatch("Value {} does not fit in {} bits for {}".format(value, bitwidth, name))
    return number


def int_to_bytes(number, bitwidth):
    return number.to_bytes(byte_width(bitwidth), byteorder='big')


def value_to_bytes(value, bitwidth, name='value'):
    """Encode value big-endian, padded to the field's byte width."""
    return int_to_bytes(value_to_int(value, bitwidth, name), bitwidth)


def encode_field(field, match):
    """
    Encode one match field. Returns None for a don't-care match, which
    the protocol requires to be left out of the entry.
    """
    bitwidth = field.bitwidth
    all_ones = (1 << bitwidth) - 1

    if match.match_type is MatchType.EXACT:
        fm = p4runtime_pb2.FieldMatch(field_id=field.id)
        fm.exact.value = value_to_bytes(match.value, bitwidth, field.name)
        return fm

    elif match.match_type is MatchType.LPM:
        prefix_len = match.prefix_len
        if isinstance(prefix_len, bool) or not isinstance(prefix_len, int):
            raise InvalidPrefixLength("Prefix length {} for {} is not an integer".format(
                prefix_len, field.name))
        if prefix_len < 0 or prefix_len > bitwidth:
            raise InvalidPrefixLength("Prefix length {} exceeds the {} bits of {}".format(
                prefix_len, bitwidth, field.name))
        number = value_to_int(match.value, bitwidth, field.name)
        if prefix_len == 0:
            return None

        # bits past the prefix must be zero on the wire
        mask = all_ones ^ ((1 << (bitwidth - prefix_len)) - 1)
        if number & ~mask:
            logger.warning("Clearing bits past /{} in LPM value {} for {}".format(
                prefix_len, match.value, field.name))
            number &= mask

        fm = p4runtime_pb2.FieldMatch(field_id=field.id)
        fm.lpm.value = int_to_bytes(number, bitwidth)
        fm.lpm.prefix_len = prefix_len
        return fm

    elif match.match_type is MatchType.TERNARY:
        number = value_to_int(match.value, bitwidth, field.name)
        mask = value_to_int(match.mask, bitwidth, field.name)
        if mask == 0:
            return None

        # masked off bits must be zero on the wire
        if number & ~mask:
            logger.warning("Clearing masked off bits in ternary value {} for {}".format(
                match.value, field.name))
            number &= mask

        fm = p4runtime_pb2.FieldMatch(field_id=field.id)
        fm.ternary.value = int_to_bytes(number, bitwidth)
        fm.ternary.mask = int_to_bytes(mask, bitwidth)
        return fm

    elif match.match_type is MatchType.RANGE:
        low = value_to_int(match.low, bitwidth, field.name)
        high = value_to_int(match.high, bitwidth, field.name)
        if low > high:
            raise SchemaMismatch("Range {}..{} for {} is empty".format(match.low, match.high, field.name))
        if low == 0 and high == all_ones:
            return None

        fm = p4runtime_pb2.FieldMatch(field_id=field.id)
        fm.range.low = int_to_bytes(low, bitwidth)
        fm.range.high = int_to_bytes(high, bitwidth)
        return fm

    raise SchemaMismatch("Unknown match type {} for {}".format(match.match_type, field.name))


def encode_match(table, matches):
    """
    Encode a table key. matches is either a list in key order or a
    dict keyed by field name; either way it must cover every field.
    """
    if isinstance(matches, dict):
        names = set(f.name for f in table.fields)
        if set(matches) != names:
            raise SchemaMismatch("Table {} expects fields {}, got {}".format(
                table.name, sorted(names), sorted(matches)))
        matches = [matches[f.name] for f in table.fields]

    if len(matches) != len(table.fields):
        raise SchemaMismatch("Table {} expects {} match fields, got {}".format(
            table.name, len(table.fields), len(matches)))

    result = []
    for field, match in zip(table.fields, matches):
        if not isinstance(match, MatchField):
            raise SchemaMismatch("Match for {} is not a MatchField: {!r}".format(field.name, match))
        if field.match_type is None:
            raise SchemaMismatch("Field {} uses an unsupported match type".format(field.name))
        if match.match_type is not field.match_type:
            raise SchemaMismatch("Field {} is {} but got a {} match".format(
                field.name, field.match_type.name, match.match_type.name))
        fm = encode_field(field, match)
        if fm is not None:
            result.append(fm)
    return result


def encode_params(action, params):
    if isinstance(params, dict):
        names = set(p.name for p in action.params)
        if set(params) != names:
            raise SchemaMismatch("Action {} expects params {}, got {}".format(
                action.name, sorted(names), sorted(params)))
        params = [params[p.name] for p in action.params]

    if len(params) != len(action.params):
        raise SchemaMismatch("Action {} expects {} params, got {}".format(
            action.name, len(action.params), len(params)))

    return [p4runtime_pb2.Action.Param(param_id=info.id,
                                       value=value_to_bytes(value, info.bitwidth, info.name))
            for info, value in zip(action.params, params)]


def encode_action(table, action):
    """Encode a direct action spec or an action profile reference."""
    table_action = p4runtime_pb2.TableAction()

    if isinstance(action, ActionSpec):
        info = table.action_get(action.action)
        table_action.action.action_id = info.id
        table_action.action.params.extend(encode_params(info, action.params))

    elif isinstance(action, ActionProfileRef):
        if not table.implementation_id:
            raise SchemaMismatch("Table {} has no action profile".format(table.name))
        if (action.member_id is None) == (action.group_id is None):
            raise SchemaMismatch("Set exactly one of member_id and group_id")
        if action.group_id is not None:
            table_action.action_profile_group_id = action.group_id
        else:
            table_action.action_profile_member_id = action.member_id

    else:
        raise SchemaMismatch("Unsupported action {!r} for table {}".format(action, table.name))

    return table_action
