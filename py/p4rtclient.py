#!/usr/bin/env python3
######################################################
#   Copyright (C) Microsoft. All rights reserved.    #
######################################################

import argparse
import logging
import signal
import sys
import threading

import google.protobuf.message
import google.protobuf.text_format
import yaml

from P4RTClient.Client import P4RUNTIME_PORT, Client, DeviceTarget
from P4RTClient.EntryFile import load_entries
from P4RTClient.Errors import EntryConstructionError, FatalError
from P4RTClient.Ipv4Lpm import Ipv4Lpm
from P4RTClient.Pipeline import PipelineConfig
from P4RTClient.Schema import Schema
from P4RTClient.Session import Session


def make_argparser():
    argparser = argparse.ArgumentParser(description="P4Runtime controller.")
    argparser.add_argument('--grpc_server', type=str, default='127.0.0.1', help='P4Runtime server name/address')
    argparser.add_argument('--grpc_port', type=int, default=P4RUNTIME_PORT, help='P4Runtime server port')
    argparser.add_argument('--device_id', type=int, default=0, help='Device id')
    argparser.add_argument('--election_id', type=int, default=1, help='Election id; the highest id becomes primary')

    argparser.add_argument('--bin', type=str, required=True, help='Path to compiled P4 program')
    argparser.add_argument('--p4info', type=str, required=True, help='Path to P4Info (text or binary)')
    argparser.add_argument('--cookie', type=lambda s: int(s, 0), default=None,
                           help='Pipeline cookie; derived from the program and P4Info if not set')

    argparser.add_argument('--entries', type=str, default=None,
                           help='YAML file describing table entries; installs the basic IPv4 routes if not set')
    argparser.add_argument('--connect_timeout', type=float, default=5.0,
                           help='Seconds to wait for the gRPC channel to connect')
    argparser.add_argument('--primary_timeout', type=float, default=5.0,
                           help='Seconds to wait to become the primary client')
    argparser.add_argument('--batch_size', type=int, default=None,
                           help='Maximum updates per Write RPC; one RPC per batch if not set')
    argparser.add_argument('--log_level', type=str, default='INFO', help='Logging level')
    return argparser


def register_signal_handlers(stop_event):
    # first signal stops the session, second one exits right away
    def handler(signum, frame):
        if stop_event.is_set():
            sys.exit(1)
        stop_event.set()

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def main(argv=None):
    args = make_argparser().parse_args(argv)

    # configure logging
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
    logger = logging.getLogger('P4RTClient')

    try:
        config = PipelineConfig.load(args.bin, args.p4info, args.cookie)
        target = DeviceTarget(args.device_id, args.election_id)
    except (OSError, ValueError,
            google.protobuf.text_format.ParseError,
            google.protobuf.message.DecodeError) as e:
        logger.error("Bad configuration: {}".format(e))
        return 2
    schema = Schema(config.p4info)

    try:
        if args.entries is not None:
            entries = load_entries(schema, args.entries)
        else:
            entries = Ipv4Lpm(schema).default_entries()
    except (OSError, yaml.YAMLError) as e:
        logger.error("Cannot load entries: {}".format(e))
        return 2
    except EntryConstructionError as e:
        logger.error("Bad table entry: {}".format(e))
        return 2

    stop_event = threading.Event()
    register_signal_handlers(stop_event)

    address = "{}:{}".format(args.grpc_server, args.grpc_port)
    client = Client(address, target)
    try:
        session = Session(client, config, entries, stop_event,
                          connect_timeout=args.connect_timeout,
                          primary_timeout=args.primary_timeout,
                          max_batch_size=args.batch_size)
        session.run()
    except FatalError as e:
        logger.error("{}: {}".format(type(e).__name__, e))
        return 1
    finally:
        client.close()
        logging.shutdown()

    return 0


if __name__ == "__main__":
    sys.exit(main())
