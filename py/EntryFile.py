######################################################
#   Copyright (C) Microsoft. All rights reserved.    #
######################################################

"""
Load table entries from a YAML file.

    entries:
      - table: MyIngress.ipv4_lpm
        match:
          hdr.ipv4.dstAddr: {lpm: [192.0.2.2, 32]}
        action: MyIngress.ipv4_forward
        params: {dstAddr: "03:02:01:00:00:00", port: 1}
        operation: insert            # insert (default), modify or delete

A bare match value is an exact match; otherwise use one of
{exact: v}, {lpm: [v, prefix_len]}, {ternary: [v, mask]} or
{range: [low, high]}. Tables with ternary or range keys need a
priority.
"""

import logging
import re

import yaml

from P4RTClient.Errors import SchemaMismatch
from P4RTClient.Installer import Operation
from P4RTClient.Match import ActionSpec, MatchField
from P4RTClient.TableEntry import build_entry

logger = logging.getLogger('EntryFile')

INT_TAG = 'tag:yaml.org,2002:int'


class EntryLoader(yaml.SafeLoader):
    """
    SafeLoader without YAML 1.1 base-60 integers, so an unquoted MAC
    like 10:22:33:44:55:06 loads as a string rather than a number.
    """


EntryLoader.yaml_implicit_resolvers = dict(
    (first, [(tag, regexp) for tag, regexp in resolvers if tag != INT_TAG])
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items())
EntryLoader.add_implicit_resolver(
    INT_TAG,
    re.compile(r'''^(?:[-+]?0b[0-1_]+
                   |[-+]?0[0-7_]+
                   |[-+]?(?:0|[1-9][0-9_]*)
                   |[-+]?0x[0-9a-fA-F_]+)$''', re.X),
    list('-+0123456789'))


def parse_match(name, spec):
    if not isinstance(spec, dict):
        return MatchField.exact(spec)
    if len(spec) != 1:
        raise SchemaMismatch("Match for {} must have exactly one kind: {}".format(name, spec))

    kind, args = next(iter(spec.items()))
    if kind == 'exact':
        return MatchField.exact(args)
    if not isinstance(args, (list, tuple)) or len(args) != 2:
        raise SchemaMismatch("Match {} for {} needs two values, got {}".format(kind, name, args))
    if kind == 'lpm':
        return MatchField.lpm(args[0], args[1])
    elif kind == 'ternary':
        return MatchField.ternary(args[0], args[1])
    elif kind == 'range':
        return MatchField.range(args[0], args[1])
    raise SchemaMismatch("Unknown match kind {} for {}".format(kind, name))


def parse_entry(schema, spec):
    """Turn one YAML entry dict into an (entry, operation) pair."""
    matches = dict((name, parse_match(name, value))
                   for name, value in (spec.get('match') or {}).items())
    action = ActionSpec(spec['action'], spec.get('params') or [])

    operation = str(spec.get('operation', 'insert')).upper()
    try:
        operation = Operation[operation]
    except KeyError:
        raise SchemaMismatch("Unknown operation {}".format(spec['operation']))

    entry = build_entry(schema, spec['table'], matches, action,
                        priority=spec.get('priority'),
                        ttl=spec.get('ttl'))
    return entry, operation


def load_entries(schema, path):
    with open(path) as f:
        contents = yaml.load(f, Loader=EntryLoader) or {}

    entries = [parse_entry(schema, spec) for spec in contents.get('entries') or []]
    logger.info("Loaded {} entries from {}".format(len(entries), path))
    return entries
