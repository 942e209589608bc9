"""Tests for target and port expression parsing."""

from portsweep.core.targets import parse_ports, resolve_targets


class TestCidr:
    def test_slash_24_excludes_network_and_broadcast(self):
        hosts = resolve_targets("192.168.1.0/24")
        assert len(hosts) == 254
        assert hosts[0] == "192.168.1.1"
        assert hosts[-1] == "192.168.1.254"
        assert "192.168.1.0" not in hosts
        assert "192.168.1.255" not in hosts

    def test_ascending_order(self):
        hosts = resolve_targets("10.0.0.0/28")
        assert hosts == [f"10.0.0.{i}" for i in range(1, 15)]

    def test_base_address_is_masked(self):
        assert resolve_targets("10.1.2.77/30") == ["10.1.2.77", "10.1.2.78"]

    def test_slash_31_includes_both(self):
        assert resolve_targets("10.0.0.4/31") == ["10.0.0.4", "10.0.0.5"]

    def test_slash_32_single_host(self):
        assert resolve_targets("10.0.0.9/32") == ["10.0.0.9"]

    def test_prefix_out_of_range(self):
        assert resolve_targets("1.2.3.4/99") == []
        assert resolve_targets("1.2.3.4/-1") == []

    def test_unparsable_base_or_prefix(self):
        assert resolve_targets("not.an.ip/24") == []
        assert resolve_targets("10.0.0.0/abc") == []

    def test_ipv6_cidr_yields_nothing(self):
        assert resolve_targets("2001:db8::/120") == []

    def test_host_cap(self):
        hosts = resolve_targets("10.0.0.0/8", max_hosts=1000)
        assert len(hosts) == 1000
        assert hosts[0] == "10.0.0.1"

    def test_default_cap_is_65536(self):
        assert len(resolve_targets("10.0.0.0/8")) == 65536


class TestDashRange:
    def test_end_clamped(self):
        hosts = resolve_targets("10.0.0.250-260")
        assert hosts == [f"10.0.0.{i}" for i in range(250, 256)]

    def test_simple_range(self):
        assert resolve_targets("192.168.0.1-3") == ["192.168.0.1", "192.168.0.2", "192.168.0.3"]

    def test_reversed_range_is_empty(self):
        assert resolve_targets("192.168.0.9-3") == []


class TestLiteral:
    def test_hostname_passthrough(self):
        assert resolve_targets("example.com") == ["example.com"]

    def test_ip_passthrough(self):
        assert resolve_targets("  8.8.8.8 ") == ["8.8.8.8"]

    def test_ipv6_literal_passthrough(self):
        assert resolve_targets("::1") == ["::1"]

    def test_blank(self):
        assert resolve_targets("") == []
        assert resolve_targets("   ") == []


class TestParsePorts:
    def test_list_and_ranges(self):
        assert parse_ports("80, 22,8000-8002") == [22, 80, 8000, 8001, 8002]

    def test_deduplicated_ascending(self):
        assert parse_ports("443,80,80,79-81") == [79, 80, 81, 443]

    def test_ranges_clamped(self):
        assert parse_ports("0-2") == [1, 2]
        assert parse_ports("65534-70000") == [65534, 65535]

    def test_invalid_tokens_ignored(self):
        assert parse_ports("http,22,0,65536,a-b,1-2-3") == [22]

    def test_empty(self):
        assert parse_ports("") == []
        assert parse_ports(" , ,") == []
