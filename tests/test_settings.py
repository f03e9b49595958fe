import pytest

from tramway import Address, InvalidSetting, Settings, parse_address


def test_defaults():
    settings = Settings()

    assert settings.host == '127.0.0.1'
    assert settings.port == 8080
    assert settings.prefix == ''
    assert settings.forward_binary is True
    assert settings.max_size == 2 ** 20
    assert settings.backlog == 200
    assert settings.ssl is None
    assert settings.log_level == 'INFO'


def test_ipv6_default_host():
    assert Settings(ipv6=True).host == '::1'


@pytest.mark.parametrize('kwargs', [
    {'port': -1},
    {'port': 65536},
    {'port': 'http'},
    {'backlog': -5},
    {'max_size': 0},
    {'host': 'example.com'},
    {'host': '::1'},
    {'host': '127.0.0.1', 'ipv6': True},
    {'log_level': 'LOUD'},
    {'prefix': 5},
])
def test_invalid_values(kwargs):
    with pytest.raises(InvalidSetting):
        Settings(**kwargs)


def test_from_env():
    env = {
        'TRAMWAY_HOST': '0.0.0.0',
        'TRAMWAY_PORT': '9000',
        'TRAMWAY_PREFIX': 'Echo: ',
        'TRAMWAY_FORWARD_BINARY': 'false',
        'UNRELATED': 'x',
    }
    settings = Settings.from_env(env)

    assert settings.host == '0.0.0.0'
    assert settings.port == 9000
    assert settings.prefix == 'Echo: '
    assert settings.forward_binary is False
    assert settings.max_size == 2 ** 20


def test_from_json(tmp_path):
    path = tmp_path / 'tramway.json'
    path.write_text('{"port": 9001, "prefix": "Echo: ", "max_size": 1024}')

    settings = Settings.from_json(path)
    assert settings.port == 9001
    assert settings.prefix == 'Echo: '
    assert settings.max_size == 1024

    assert Settings.from_json({'port': 9002}).port == 9002


def test_from_json_rejects_unknown_keys():
    with pytest.raises(InvalidSetting):
        Settings.from_json({'workers': 4})


def test_from_address():
    settings = Settings.from_address('0.0.0.0:9000', prefix='Echo: ')
    assert (settings.host, settings.port, settings.prefix) == ('0.0.0.0', 9000, 'Echo: ')

    settings = Settings.from_address('[::1]:9000')
    assert settings.ipv6 is True
    assert settings.host == '::1'

    with pytest.raises(InvalidSetting):
        Settings.from_address('localhost')


def test_update_returns_new_settings():
    settings = Settings()
    updated = settings.update(port=9000, prefix=None)

    assert updated.port == 9000
    assert updated.prefix == ''
    assert settings.port == 8080

    assert settings.update(ipv6=True).host == '::1'


def test_to_dict_round_trips():
    settings = Settings(port=9000, prefix='Echo: ')
    assert Settings(**settings.to_dict()) == settings


@pytest.mark.parametrize('address, expected', [
    ('127.0.0.1:8080', Address('127.0.0.1', 8080)),
    ('localhost:0', Address('localhost', 0)),
    (' 0.0.0.0:65535 ', Address('0.0.0.0', 65535)),
    ('[::1]:8080', Address('::1', 8080)),
])
def test_parse_address(address, expected):
    assert parse_address(address) == expected


@pytest.mark.parametrize('address', [
    '127.0.0.1',
    ':8080',
    '127.0.0.1:',
    '127.0.0.1:http',
    '127.0.0.1:70000',
    '256.0.0.1:80',
    '[::1]8080',
    '[127.0.0.1]:80',
    'example.com:80',
])
def test_parse_invalid_address(address):
    with pytest.raises(ValueError):
        parse_address(address)


def test_address_str():
    assert str(Address('::1', 8080)) == '[::1]:8080'
    assert str(Address('127.0.0.1', 8080)) == '127.0.0.1:8080'
