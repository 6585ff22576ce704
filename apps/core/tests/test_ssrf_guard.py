"""
Tests for SSRF Guard.

Website URLs come from LLM output, so verification must never reach
internal addresses.

Tests cover:
- IP blocking (private, loopback, link-local, metadata ranges)
- IPv6 and IPv4-mapped IPv6
- Port and scheme blocking
- DNS resolution of every address
- SafeHTTPClient validating before any request
- Redirects validated hop by hop
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from apps.core.security import SafeHTTPClient, SSRFError, SSRFGuard


def dns_answer(*ips):
    return [(2, 1, 0, '', (ip, 80)) for ip in ips]


# ============================================================================
# IP Validation Tests
# ============================================================================

class TestIPValidation:

    @pytest.mark.parametrize('ip', [
        '127.0.0.1',
        '10.0.0.1',
        '172.16.0.1',
        '172.31.255.255',
        '192.168.1.1',
        '169.254.169.254',
        '0.0.0.0',
        '224.0.0.1',
    ])
    def test_non_public_ipv4_blocked(self, ip):
        with pytest.raises(SSRFError):
            SSRFGuard()._validate_ip(ip)

    @pytest.mark.parametrize('ip', ['8.8.8.8', '1.1.1.1', '93.184.216.34', '172.32.0.1'])
    def test_public_ip_allowed(self, ip):
        SSRFGuard()._validate_ip(ip)

    @pytest.mark.parametrize('ip', ['::1', 'fc00::1', 'fd00::1', 'fe80::1', '::ffff:127.0.0.1'])
    def test_non_public_ipv6_blocked(self, ip):
        with pytest.raises(SSRFError):
            SSRFGuard()._validate_ip(ip)

    def test_garbage_ip_rejected(self):
        with pytest.raises(SSRFError):
            SSRFGuard()._validate_ip('not-an-ip')


# ============================================================================
# URL Validation Tests
# ============================================================================

class TestURLValidation:

    @patch('socket.getaddrinfo', return_value=dns_answer('93.184.216.34'))
    def test_public_url_allowed(self, mock_dns):
        url, hostname, port = SSRFGuard().validate_url('https://www.lensandlight.example.com/')

        assert hostname == 'www.lensandlight.example.com'
        assert port == 443

    @patch('socket.getaddrinfo', return_value=dns_answer('192.168.1.1'))
    def test_private_resolution_blocked(self, mock_dns):
        with pytest.raises(SSRFError) as exc_info:
            SSRFGuard().validate_url('http://studio.example.com/')

        assert 'not publicly routable' in str(exc_info.value)

    @patch('socket.getaddrinfo', return_value=dns_answer('8.8.8.8', '127.0.0.1'))
    def test_every_resolved_ip_checked(self, mock_dns):
        with pytest.raises(SSRFError):
            SSRFGuard().validate_url('http://dual.example.com/')

    @pytest.mark.parametrize('url', ['file:///etc/passwd', 'gopher://example.com/', 'ftp://example.com/'])
    def test_non_http_scheme_blocked(self, url):
        with pytest.raises(SSRFError):
            SSRFGuard().validate_url(url)

    @pytest.mark.parametrize('url', ['http://example.com:22/', 'http://example.com:6379/'])
    def test_blocked_port(self, url):
        with pytest.raises(SSRFError):
            SSRFGuard().validate_url(url)

    @pytest.mark.parametrize('url', ['http://localhost/', 'http://metadata.google.internal/'])
    def test_blocked_hostname(self, url):
        with pytest.raises(SSRFError):
            SSRFGuard().validate_url(url)

    @patch('socket.getaddrinfo', return_value=dns_answer('127.0.0.1'))
    def test_userinfo_does_not_hide_host(self, mock_dns):
        with pytest.raises(SSRFError):
            SSRFGuard().validate_url('http://example.com@127.0.0.1/')

    def test_missing_hostname(self):
        with pytest.raises(SSRFError):
            SSRFGuard().validate_url('http:///path')

    @patch('socket.getaddrinfo', return_value=dns_answer('93.184.216.34'))
    def test_blocked_domains_option(self, mock_dns):
        guard = SSRFGuard(blocked_domains={'spam.example'})

        with pytest.raises(SSRFError):
            guard.validate_url('https://sub.spam.example/')
        guard.validate_url('https://notspam.example/')

    def test_allow_private_ips_skips_resolution(self):
        with patch('socket.getaddrinfo') as mock_dns:
            SSRFGuard(allow_private_ips=True).validate_url('http://studio.internal/')

        mock_dns.assert_not_called()


# ============================================================================
# SafeHTTPClient Tests
# ============================================================================

class TestSafeHTTPClient:

    @patch('socket.getaddrinfo', return_value=dns_answer('93.184.216.34'))
    @patch('requests.Session.head')
    def test_validation_before_request(self, mock_head, mock_dns):
        mock_head.return_value = MagicMock(status_code=200, is_redirect=False)

        response = SafeHTTPClient().head('https://example.com/')

        assert response.status_code == 200
        assert mock_head.call_args.kwargs['allow_redirects'] is False

    @patch('socket.getaddrinfo', return_value=dns_answer('127.0.0.1'))
    @patch('requests.Session.get')
    def test_blocked_url_makes_no_request(self, mock_get, mock_dns):
        with pytest.raises(SSRFError):
            SafeHTTPClient().get('http://internal.example.com/')

        mock_get.assert_not_called()

    def test_custom_user_agent(self):
        client = SafeHTTPClient(user_agent='VendorVerifier/2.0')

        assert client.session.headers['User-Agent'] == 'VendorVerifier/2.0'


# ============================================================================
# Redirect handling
# ============================================================================

def resolve_by_host(table):
    def _getaddrinfo(host, *args, **kwargs):
        return dns_answer(table[host])
    return _getaddrinfo


def redirect_to(location):
    return MagicMock(status_code=302, is_redirect=True, headers={'location': location})


class TestRedirects:

    @patch('socket.getaddrinfo', side_effect=resolve_by_host({
        'studio.example.com': '93.184.216.34',
        'www.studio.example.com': '93.184.216.35',
    }))
    @patch('requests.Session.head')
    def test_relative_and_absolute_hops_followed(self, mock_head, mock_dns):
        mock_head.side_effect = [
            redirect_to('https://www.studio.example.com/'),
            redirect_to('/home'),
            MagicMock(status_code=200, is_redirect=False),
        ]

        response = SafeHTTPClient().head('http://studio.example.com/')

        assert response.status_code == 200
        assert [c.args[0] for c in mock_head.call_args_list] == [
            'http://studio.example.com/',
            'https://www.studio.example.com/',
            'https://www.studio.example.com/home',
        ]

    @patch('socket.getaddrinfo', side_effect=resolve_by_host({
        'studio.example.com': '93.184.216.34',
        'internal.example.com': '10.0.0.5',
    }))
    @patch('requests.Session.get')
    def test_redirect_to_internal_address_blocked(self, mock_get, mock_dns):
        mock_get.return_value = redirect_to('http://internal.example.com/admin')

        with pytest.raises(SSRFError):
            SafeHTTPClient().get('http://studio.example.com/')

        assert mock_get.call_count == 1

    @patch('socket.getaddrinfo', return_value=dns_answer('93.184.216.34'))
    @patch('requests.Session.head')
    def test_redirect_loop_stops(self, mock_head, mock_dns):
        mock_head.return_value = redirect_to('http://studio.example.com/')

        with pytest.raises(requests.TooManyRedirects):
            SafeHTTPClient().head('http://studio.example.com/')

        assert mock_head.call_count == SafeHTTPClient.MAX_REDIRECTS + 1

    @patch('socket.getaddrinfo', return_value=dns_answer('93.184.216.34'))
    @patch('requests.Session.head')
    def test_redirect_returned_when_not_following(self, mock_head, mock_dns):
        mock_head.return_value = redirect_to('http://10.0.0.5/')

        response = SafeHTTPClient().head('http://studio.example.com/', allow_redirects=False)

        assert response.status_code == 302
        assert mock_head.call_count == 1
