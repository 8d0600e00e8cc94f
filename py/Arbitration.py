######################################################
#   Copyright (C) Microsoft. All rights reserved.    #
######################################################

"""
Mastership arbitration.

A background thread reads the device's StreamChannel and feeds each
arbitration notification to the state machine here. The rest of the
client sees only the current MastershipState, a one-shot "became
primary" gate, and per-subscriber queues of role changes.
"""

import logging
import queue
import threading
import time
from collections import namedtuple
from enum import Enum

import grpc
from google.rpc import code_pb2

from P4RTClient.Client import election_id_from_proto
from P4RTClient.Errors import ArbitrationTimeout, NotPrimary


class Role(Enum):
    UNKNOWN = 0
    BACKUP  = 1
    PRIMARY = 2


MastershipState = namedtuple('MastershipState', ['role', 'election_id', 'generation'])


class Arbitration(object):

    def __init__(self, stub, target, stop_event, poll_interval=0.1):
        self.logger = logging.getLogger('Arbitration')
        self.stub = stub
        self.target = target
        self.stop_event = stop_event
        self.poll_interval = poll_interval

        # only the reader thread replaces this
        self.state = MastershipState(Role.UNKNOWN, None, 0)

        # set once, the first time we are primary; never cleared
        self.primary_ready = threading.Event()

        self.subscribers = []
        self.subscribers_lock = threading.Lock()

        # outbound half of the stream; None closes it
        self.requests = queue.Queue()
        self.stream = None
        self.thread = None
        self.stopping = False

    #
    # queries
    #

    def current(self):
        return self.state

    def role(self):
        return self.state.role

    def is_primary(self):
        return self.state.role is Role.PRIMARY

    def require_primary(self):
        """Raise NotPrimary unless we currently hold mastership."""
        state = self.state
        if state.role is not Role.PRIMARY:
            raise NotPrimary("Device {} write attempted while {} (generation {})".format(
                self.target.device_id, state.role.name, state.generation))

    def subscribe(self):
        """Return a queue that receives every MastershipState whose role changed."""
        changes = queue.Queue()
        with self.subscribers_lock:
            self.subscribers.append(changes)
        return changes

    def wait_for_primary(self, timeout):
        """
        Block until we have been primary at least once.

        Returns True once primary, False if the stop signal fires first.
        Raises ArbitrationTimeout after timeout seconds; the reader
        thread keeps running either way.
        """
        deadline = time.monotonic() + timeout
        while not self.primary_ready.is_set():
            if self.stop_event.is_set():
                return False
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ArbitrationTimeout("Could not become the primary client within {}s".format(timeout))
            self.primary_ready.wait(min(remaining, self.poll_interval))
        return True

    #
    # state machine
    #

    def handle_notification(self, update):
        """Apply one MasterArbitrationUpdate received from the device."""
        if update.device_id != self.target.device_id:
            self.logger.warning("Ignoring arbitration update for device {}".format(update.device_id))
            return

        if update.status.code == code_pb2.OK:
            role = Role.PRIMARY
        else:
            role = Role.BACKUP

        previous = self.state
        election_id = None
        if update.HasField('election_id'):
            election_id = election_id_from_proto(update.election_id)
        self.state = MastershipState(role, election_id, previous.generation + 1)

        if role is not previous.role:
            if role is Role.PRIMARY:
                self.logger.info("We are the primary client!")
            else:
                self.logger.info("We are not the primary client! ({})".format(update.status.message))
            self.publish(self.state)

        if role is Role.PRIMARY and not self.primary_ready.is_set():
            self.primary_ready.set()

    def stream_lost(self):
        previous = self.state
        self.state = MastershipState(Role.UNKNOWN, previous.election_id, previous.generation)
        if previous.role is not Role.UNKNOWN:
            self.publish(self.state)

    def publish(self, state):
        with self.subscribers_lock:
            subscribers = list(self.subscribers)
        for changes in subscribers:
            changes.put_nowait(state)

    #
    # stream lifecycle
    #

    def request_iterator(self):
        while True:
            request = self.requests.get()
            if request is None:
                return
            yield request

    def start(self):
        self.logger.info("Opening stream channel to device {} with election id {}".format(
            self.target.device_id, self.target.election_id))
        self.requests.put(self.target.arbitration_request())
        self.stream = self.stub.StreamChannel(self.request_iterator())
        self.thread = threading.Thread(target=self.read_notifications, name='Arbitration')
        self.thread.daemon = True
        self.thread.start()

    def read_notifications(self):
        try:
            for response in self.stream:
                update = response.WhichOneof('update')
                if update == 'arbitration':
                    self.handle_notification(response.arbitration)
                elif update == 'error':
                    self.logger.error("Stream error from device: {}".format(response.error))
                else:
                    self.logger.debug("Ignoring stream message of type {}".format(update))
        except grpc.RpcError as e:
            if self.closing():
                self.logger.debug("Stream channel cancelled: {}".format(e))
            else:
                self.logger.error("Stream channel failed: {}".format(e))
        finally:
            # whatever ended the reader, our role is no longer known
            if not self.closing():
                self.logger.error("Stream channel closed; mastership is now unknown")
            self.stream_lost()

    def closing(self):
        return self.stopping or self.stop_event.is_set()

    def stop(self, timeout=None):
        """Close our half of the stream, cancel the call and join the reader."""
        self.stopping = True
        self.requests.put(None)
        if self.stream is not None:
            self.stream.cancel()
        if self.thread is not None:
            self.thread.join(timeout)
            self.thread = None
