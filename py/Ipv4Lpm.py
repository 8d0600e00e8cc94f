######################################################
#   Copyright (C) Microsoft. All rights reserved.    #
######################################################

import logging

from P4RTClient.Match import ActionSpec, MatchField
from P4RTClient.Table import Table


class Ipv4Lpm(Table):
    """Helper for the basic IPv4 routing table, keyed on destination address."""

    table_name = "MyIngress.ipv4_lpm"
    drop_action = "MyIngress.drop"
    forward_action = "MyIngress.ipv4_forward"

    def __init__(self, schema):
        # set up base class
        super(Ipv4Lpm, self).__init__(schema)

        self.logger = logging.getLogger('Ipv4Lpm')

        # get this table
        self.table = self.schema.table_get(self.table_name)

    def drop_entry(self, prefix, prefix_len):
        self.logger.debug("Drop route {}/{}".format(prefix, prefix_len))
        return self.make_entry([MatchField.lpm(prefix, prefix_len)],
                               ActionSpec(self.drop_action))

    # forward to next hop: 6 bytes of MAC and the egress port
    def forward_entry(self, prefix, prefix_len, dst_mac, port):
        self.logger.debug("Forward route {}/{} to {} port {}".format(prefix, prefix_len, dst_mac, port))
        return self.make_entry([MatchField.lpm(prefix, prefix_len)],
                               ActionSpec(self.forward_action, [dst_mac, port]))

    def default_entries(self):
        """Blackhole 192.0.2.1, forward 192.0.2.2, drop everything else."""
        return [self.drop_entry("192.0.2.1", 32),
                self.forward_entry("192.0.2.2", 32, "03:02:01:00:00:00", 1),
                self.drop_entry("0.0.0.0", 1),
                self.drop_entry("128.0.0.0", 1)]
