#!/usr/bin/env python3
"""
05_tls_wrapper.py - Certificate-Based TLS

This example demonstrates:
- Building a socket wrapper from TLSConfig
- Using the same wrapper for Sender and Getter
- Writing a custom wrapper that reads the agent TLS options

Prerequisites:
    - Zabbix server and agent configured with TLSAccept=cert
    - CA, certificate and key files at the paths below
    - pyzbx installed

Run with:
    python 05_tls_wrapper.py
"""

import ssl

from pyzbx import Getter, Sender, TLSConfig

CA_FILE = "/etc/zabbix/ca.crt"
CERT_FILE = "/etc/zabbix/agent.crt"
KEY_FILE = "/etc/zabbix/agent.key"


def tls_config_wrapper():
    """Wrapper built by TLSConfig"""
    print("TLSConfig Wrapper")
    print("-" * 50)

    tls = TLSConfig(
        ca_file=CA_FILE,
        cert_file=CERT_FILE,
        key_file=KEY_FILE,
        server_name="zabbix.example.com",
    )
    wrapper = tls.socket_wrapper()

    sender = Sender("zabbix.example.com", socket_wrapper=wrapper)
    print(f"✓ Sent: {sender.send_value('host', 'item.key', 1)}")

    agent = Getter("zabbix.example.com", socket_wrapper=wrapper)
    print(f"✓ agent.ping = {agent.get('agent.ping').value}")


def custom_wrapper():
    """Wrapper driven by the agent configuration file"""
    print("\nCustom Wrapper")
    print("-" * 50)

    def wrapper(sock, tls):
        # tls holds the TLS* options of the agent configuration
        context = ssl.create_default_context(cafile=tls.get("TLSCAFile"))
        context.check_hostname = False
        context.load_cert_chain(tls["TLSCertFile"], tls["TLSKeyFile"])
        return context.wrap_socket(sock)

    sender = Sender(use_config=True, socket_wrapper=wrapper)
    print(f"✓ Sent: {sender.send_value('host', 'item.key', 1)}")


def main():
    print("pyzbx - TLS Example")
    print("=" * 50)

    tls_config_wrapper()
    custom_wrapper()


if __name__ == "__main__":
    main()
