######################################################
#   Copyright (C) Microsoft. All rights reserved.    #
######################################################

import logging
from pprint import pformat

from P4RTClient.Installer import Operation
from P4RTClient.TableEntry import TableEntry, build_entry


class Table(object):

    def __init__(self, schema, name=None):
        # get logging and global program info
        self.logger = logging.getLogger('Table')
        self.schema = schema

        # child classes may set table instead of passing a name
        self.table = None
        if name is not None:
            self.table = self.schema.table_get(name)

        # lowest possible priority for ternary match rules
        self.lowest_priority = 1

    def make_entry(self, matches, action, priority=None, ttl=None, metadata=b''):
        """Build an entry for this table. No I/O."""
        return build_entry(self.schema, self.table.id, matches, action,
                           priority=priority, ttl=ttl, metadata=metadata)

    def read(self, installer):
        return [TableEntry.from_proto(e, self.table.name)
                for e in installer.read(self.table.id)]

    def clear(self, installer):
        """Remove all existing entries in table."""
        if self.table is None:
            return []

        entries = self.read(installer)
        if not entries:
            return []

        self.logger.info("Deleting {} entries from {}".format(len(entries), self.table.name))
        results = installer.write([(e, Operation.DELETE) for e in entries])
        failed = [r for r in results if not r.ok]
        if failed:
            self.logger.error("Could not delete {} entries:\n{}".format(
                len(failed), pformat([str(r) for r in failed])))
        return results
