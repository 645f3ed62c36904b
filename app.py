import argparse
import os
import sys
import threading

from truststore_tester.config import ConfigManager
from truststore_tester.ocsp_responder import MockOcspResponder, load_signer
from truststore_tester.server_thread import MockServerThread
from truststore_tester.tsl_provider import MockTslProvider


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Mock TSL provider and OCSP responder for trust store tests")
    parser.add_argument("--config", default="truststore_tester.json", help="harness configuration file (JSON)")
    parser.add_argument("--host", default="0.0.0.0", help="interface to bind both servers to")
    parser.add_argument("--tsl-port", type=int, help="TSL provider port (default from config)")
    parser.add_argument("--ocsp-port", type=int, help="OCSP responder port (default from config)")
    parser.add_argument("--signer-cert", help="default OCSP signer certificate (PEM or DER)")
    parser.add_argument("--signer-key", help="default OCSP signer private key (PEM)")
    parser.add_argument("--default-seq-nr", type=int, help="seqNr tag for OCSP requests carrying none")
    parser.add_argument("--only", choices=["tsl", "ocsp"], help="start only one of the servers")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    print("Trust Store Test Mock Servers")
    print("=" * 50)

    config = ConfigManager(args.config).load_config()

    signer = None
    if args.signer_cert or args.signer_key:
        if not (args.signer_cert and args.signer_key):
            print("[ERROR] --signer-cert and --signer-key must be given together")
            return 1
        for path in (args.signer_cert, args.signer_key):
            if not os.path.exists(path):
                print(f"[ERROR] File not found: {path}")
                return 1
        signer = load_signer(args.signer_cert, args.signer_key)
        print(f"[INFO] Default OCSP signer: {signer.certificate.subject.rfc4514_string()}")
    elif args.only != "tsl":
        print("[WARN] No default OCSP signer given; requests without a configured signer are answered with 500")

    servers = []
    if args.only != "ocsp":
        tsl_provider = MockTslProvider()
        servers.append(MockServerThread(tsl_provider.app, args.host, args.tsl_port or config.tsl_provider_port))
    if args.only != "tsl":
        responder = MockOcspResponder(default_signer=signer, default_seq_nr=args.default_seq_nr)
        servers.append(MockServerThread(responder.app, args.host, args.ocsp_port or config.ocsp_responder_port))

    for server in servers:
        server.start_and_wait()

    print("[INFO] Press Ctrl+C to stop")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        print("\n[INFO] Stopping mock servers")
    finally:
        for server in servers:
            server.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
