"""
firewall.py
Ingress allow-list control for the game server's network security group.

Both transitions follow the same sequence against the NSG:
    list current rules -> add the new ingress rules -> remove the old ingress rules

New rules always go in before the old ones come out, so the group never
passes through a state with zero ingress rules. Egress rules are never touched.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Sequence, Tuple

import requests
from oci.core.models import (
    AddNetworkSecurityGroupSecurityRulesDetails,
    AddSecurityRuleDetails,
    PortRange,
    RemoveNetworkSecurityGroupSecurityRulesDetails,
    TcpOptions,
    UdpOptions,
)
from oci.exceptions import ServiceError
from oci.pagination import list_call_get_all_results

from settings import DEFAULT_GAME_PORTS, OracleParameters

INGRESS = "INGRESS"
CIDR_BLOCK = "CIDR_BLOCK"
ANYWHERE = "0.0.0.0/0"
PROTOCOL_ALL = "all"
PROTOCOL_TCP = "6"
PROTOCOL_UDP = "17"

OCI_ERRORS = (ServiceError, requests.exceptions.RequestException)


class FirewallError(Exception):
    """Raised when the firewall policy could not be changed."""


class FirewallRuleTransition(ABC):
    """Contract for switching ingress between the allow-list and the default policy."""

    @abstractmethod
    def restrict_ingress_to(self, ips: Sequence[str]) -> None:
        """Allow inbound traffic only from the given addresses."""
        pass

    @abstractmethod
    def restore_default_ingress(self) -> None:
        """Re-open the game ports to everyone."""
        pass


def to_cidr(ip: str) -> str:
    return ip if "/" in ip else f"{ip}/32"


class OciNsgFirewall(FirewallRuleTransition):
    """
    FirewallRuleTransition backed by an OCI network security group.

    The NSG is looked up by display name on every call, so a recreated group
    is picked up without restarting the shield.
    """

    def __init__(self, client, parameters: OracleParameters,
                 game_ports: Tuple[int, int] = DEFAULT_GAME_PORTS):
        """
        Args:
            client: oci.core.VirtualNetworkClient (or compatible)
            parameters: NSG display name, compartment and VCN
            game_ports: (min, max) destination ports opened on restore
        """
        self.client = client
        self.parameters = parameters
        self.game_ports = game_ports
        self.logger = logging.getLogger("OciNsgFirewall")

    def restrict_ingress_to(self, ips: Sequence[str]) -> None:
        self.logger.info(
            f"Enabling firewall restriction for NSG '{self.parameters.nsg_name}' "
            f"with allowed IPs: {list(ips)}"
        )
        rules = []
        for ip in ips:
            cidr = to_cidr(ip)
            self.logger.debug(f"Adding ingress rule for source: {cidr}")
            rules.append(AddSecurityRuleDetails(
                direction=INGRESS,
                source=cidr,
                source_type=CIDR_BLOCK,
                protocol=PROTOCOL_ALL,
                is_stateless=False,
            ))
        self._replace_ingress_rules(rules)
        self.logger.info("Firewall restriction enabled.")

    def restore_default_ingress(self) -> None:
        port_min, port_max = self.game_ports
        self.logger.info(
            f"Disabling firewall restriction for NSG '{self.parameters.nsg_name}' "
            f"(allowing all on {port_min}-{port_max} TCP/UDP)"
        )
        port_range = PortRange(min=port_min, max=port_max)
        rules = [
            AddSecurityRuleDetails(
                direction=INGRESS,
                source=ANYWHERE,
                source_type=CIDR_BLOCK,
                protocol=PROTOCOL_TCP,
                is_stateless=False,
                tcp_options=TcpOptions(destination_port_range=port_range),
            ),
            AddSecurityRuleDetails(
                direction=INGRESS,
                source=ANYWHERE,
                source_type=CIDR_BLOCK,
                protocol=PROTOCOL_UDP,
                is_stateless=False,
                udp_options=UdpOptions(destination_port_range=port_range),
            ),
        ]
        self._replace_ingress_rules(rules)
        self.logger.info("Firewall restriction disabled (allow-all rules active).")

    def _replace_ingress_rules(self, rules: List[AddSecurityRuleDetails]) -> None:
        nsg_id = self._get_nsg_id()

        old_rule_ids = self._list_ingress_rule_ids(nsg_id)

        if rules:
            self.logger.info(f"Adding {len(rules)} new ingress rules...")
            try:
                self.client.add_network_security_group_security_rules(
                    nsg_id,
                    AddNetworkSecurityGroupSecurityRulesDetails(security_rules=rules),
                )
            except OCI_ERRORS as e:
                raise FirewallError(f"failed to add ingress rules: {e}") from e

        if old_rule_ids:
            self.logger.info(f"Removing {len(old_rule_ids)} old ingress rules...")
            try:
                self.client.remove_network_security_group_security_rules(
                    nsg_id,
                    RemoveNetworkSecurityGroupSecurityRulesDetails(
                        security_rule_ids=old_rule_ids
                    ),
                )
            except OCI_ERRORS as e:
                raise FirewallError(f"failed to remove old ingress rules: {e}") from e

    def _get_nsg_id(self) -> str:
        params = self.parameters
        try:
            response = self.client.list_network_security_groups(
                compartment_id=params.compartment_id,
                vcn_id=params.vcn_id,
                display_name=params.nsg_name,
            )
        except OCI_ERRORS as e:
            raise FirewallError(f"failed to list NSGs: {e}") from e

        if not response.data:
            raise FirewallError(f"no NSG found with name {params.nsg_name}")
        nsg_id = response.data[0].id
        self.logger.debug(f"NSG ID for '{params.nsg_name}' is {nsg_id}")
        return nsg_id

    def _list_ingress_rule_ids(self, nsg_id: str) -> List[str]:
        try:
            # All pages; the service caps each response
            response = list_call_get_all_results(
                self.client.list_network_security_group_security_rules, nsg_id
            )
        except OCI_ERRORS as e:
            raise FirewallError(f"failed to list NSG rules: {e}") from e

        return [rule.id for rule in response.data if rule.direction == INGRESS]
