######################################################
#   Copyright (C) Microsoft. All rights reserved.    #
######################################################

import logging
import queue
from enum import Enum

from P4RTClient.Arbitration import Arbitration, Role
from P4RTClient.Installer import Installer, Operation
from P4RTClient.Pipeline import Pipeline


class SessionState(Enum):
    CONNECTING           = 0
    AWAITING_PRIMARY     = 1
    CONFIGURING_PIPELINE = 2
    INSTALLING_ENTRIES   = 3
    IDLE                 = 4
    STOPPED              = 5


class Session(object):
    """
    Runs one control session against a device:

      Connecting -> AwaitingPrimary -> ConfiguringPipeline ->
      InstallingEntries -> Idle -> Stopped

    Fatal errors end the sequence; the session is torn down and the
    error is re-raised to the caller. Writes are issued one at a time
    from the calling thread; only the arbitration reader runs beside it.
    """

    def __init__(self, client, pipeline_config, entries, stop_event,
                 primary_timeout=5.0, max_batch_size=None, idle_poll=0.5,
                 connect_timeout=5.0):
        self.logger = logging.getLogger('Session')

        # capture connection state
        self.client = client
        self.stop_event = stop_event

        # capture session state
        self.pipeline_config = pipeline_config
        self.entries = [self.as_update(e) for e in entries]
        self.connect_timeout = connect_timeout
        self.primary_timeout = primary_timeout
        self.idle_poll = idle_poll

        self.state = SessionState.CONNECTING
        self.results = []

        # set up components; all share the one stub and target
        self.arbitration = Arbitration(client.stub, client.target, stop_event)
        self.pipeline = Pipeline(client.stub, client.target, self.arbitration)
        self.installer = Installer(client.stub, client.target, self.arbitration,
                                   max_batch_size=max_batch_size)

    @staticmethod
    def as_update(entry):
        # plain entries are inserted
        if isinstance(entry, tuple) and len(entry) == 2 and isinstance(entry[1], Operation):
            return entry
        return (entry, Operation.INSERT)

    def transition(self, state):
        self.logger.info("Session {} -> {}".format(self.state.name, state.name))
        self.state = state

    def run(self):
        """Run the session until the stop signal fires. Returns the install results."""
        role_changes = self.arbitration.subscribe()
        try:
            self.logger.info("Connecting to device {}".format(self.client.target.device_id))
            self.client.wait_ready(self.connect_timeout)
            self.client.capabilities()
            self.arbitration.start()

            self.transition(SessionState.AWAITING_PRIMARY)
            if not self.arbitration.wait_for_primary(self.primary_timeout):
                self.logger.info("Stop requested while waiting for mastership")
                return self.results

            self.transition(SessionState.CONFIGURING_PIPELINE)
            self.pipeline.push(self.pipeline_config)

            self.transition(SessionState.INSTALLING_ENTRIES)
            self.results = self.installer.write(self.entries)
            failed = len([r for r in self.results if not r.ok])
            self.logger.info("Installed {} of {} entries".format(len(self.results) - failed, len(self.results)))

            self.transition(SessionState.IDLE)
            self.logger.info("Do Ctrl-C to quit")
            self.idle(role_changes)
            return self.results
        finally:
            self.teardown()

    def idle(self, role_changes):
        while not self.stop_event.is_set():
            try:
                state = role_changes.get(timeout=self.idle_poll)
            except queue.Empty:
                continue
            if state.role is Role.PRIMARY:
                self.logger.info("Mastership regained (generation {})".format(state.generation))
            elif state.role is Role.BACKUP:
                self.logger.warning("Demoted to backup (generation {}); new writes will be refused".format(
                    state.generation))
            else:
                self.logger.warning("Mastership unknown; stream to device lost")

    def teardown(self):
        self.logger.info("Stopping client")
        self.arbitration.stop(timeout=5.0)
        self.transition(SessionState.STOPPED)
