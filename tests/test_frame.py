import struct

import pytest

from tramway import PartialRead
from tramway.websockets import (
    Data,
    FragmentedControlFrame,
    InvalidWebSocketCloseCode,
    InvalidWebSocketControlFrame,
    InvalidWebSocketFrame,
    InvalidWebSocketOpcode,
    InvalidWebSocketPayload,
    MessageTooBig,
    WebSocketCloseCode,
    WebSocketFrame,
    WebSocketOpcode,
)

from conftest import decode_all, make_reader


async def decode(data: bytes, **kwargs) -> WebSocketFrame:
    return await WebSocketFrame.decode(make_reader(data).read, **kwargs)


async def test_decode_unmasked_text_frame():
    frame = await decode(b'\x81\x05Hello')

    assert frame.fin
    assert frame.opcode is WebSocketOpcode.TEXT
    assert frame.data == b'Hello'


async def test_decode_masked_text_frame():
    # Example taken from RFC 6455, section 5.7
    frame = await decode(b'\x81\x85\x37\xfa\x21\x3d\x7f\x9f\x4d\x51\x58')
    assert frame.data == b'Hello'


async def test_decode_extended_lengths():
    medium = b'a' * 300
    frame = await decode(b'\x82\x7e' + struct.pack('!H', 300) + medium)
    assert frame.opcode is WebSocketOpcode.BINARY
    assert frame.data == medium

    large = b'b' * 70000
    frame = await decode(b'\x82\x7f' + struct.pack('!Q', 70000) + large)
    assert frame.data == large


async def test_encode_uses_extended_lengths():
    assert WebSocketFrame.create(b'a' * 125, opcode=WebSocketOpcode.TEXT).encode()[1] == 125
    assert WebSocketFrame.create(b'a' * 126, opcode=WebSocketOpcode.TEXT).encode()[1] == 126
    assert WebSocketFrame.create(b'a' * 65536, opcode=WebSocketOpcode.TEXT).encode()[1] == 127


async def test_masked_encoding_is_decoded_back():
    frame = WebSocketFrame.create('héllo'.encode(), opcode=WebSocketOpcode.TEXT)
    data = frame.encode(masked=True)

    assert data[1] & 0x80
    assert b'h\xc3\xa9llo' not in data

    decoded, = await decode_all(data, masked=True)
    assert decoded.data == 'héllo'.encode()


async def test_decode_rejects_unknown_opcode():
    with pytest.raises(InvalidWebSocketOpcode) as info:
        await decode(b'\x83\x00')

    assert info.value.opcode == 3


async def test_decode_rejects_reserved_bits():
    with pytest.raises(InvalidWebSocketFrame):
        await decode(b'\xc1\x00')


async def test_decode_rejects_fragmented_control_frame():
    with pytest.raises(FragmentedControlFrame):
        await decode(b'\x09\x00')


async def test_decode_rejects_oversized_control_frame():
    with pytest.raises(InvalidWebSocketControlFrame):
        await decode(b'\x89\x7e' + struct.pack('!H', 126) + b'a' * 126)


async def test_decode_close_frame():
    frame = await decode(b'\x88\x07' + struct.pack('!H', 1001) + b'bye!!')

    assert frame.opcode is WebSocketOpcode.CLOSE
    assert frame.close_code is WebSocketCloseCode.GOING_AWAY
    assert frame.close_reason == 'bye!!'


async def test_decode_empty_close_frame():
    frame = await decode(b'\x88\x00')

    assert frame.close_code is None
    assert frame.close_reason == ''


async def test_decode_close_frame_with_one_byte_payload():
    with pytest.raises(InvalidWebSocketFrame):
        await decode(b'\x88\x01\x03')


@pytest.mark.parametrize('code', [999, 1004, 1005, 1006, 1015, 2000, 5000])
async def test_decode_rejects_invalid_close_codes(code):
    with pytest.raises(InvalidWebSocketCloseCode):
        await decode(b'\x88\x02' + struct.pack('!H', code))


async def test_decode_accepts_application_close_codes():
    frame = await decode(b'\x88\x02' + struct.pack('!H', 4000))
    assert frame.close_code == 4000


async def test_decode_rejects_invalid_utf8_close_reason():
    with pytest.raises(InvalidWebSocketPayload) as info:
        await decode(b'\x88\x04' + struct.pack('!H', 1000) + b'\xff\xfe')

    assert info.value.close_code is WebSocketCloseCode.UNSUPPORTED_PAYLOAD


async def test_decode_enforces_max_size():
    with pytest.raises(MessageTooBig) as info:
        await decode(b'\x82\x7e' + struct.pack('!H', 300) + b'a' * 300, max_size=100)

    assert info.value.close_code is WebSocketCloseCode.TOO_LARGE


async def test_decode_enforces_masking_requirements():
    with pytest.raises(InvalidWebSocketFrame):
        await decode(b'\x81\x05Hello', masked=True)

    masked = WebSocketFrame.create(b'Hello', opcode=WebSocketOpcode.TEXT).encode(masked=True)
    with pytest.raises(InvalidWebSocketFrame):
        await decode(masked, masked=False)


async def test_decode_truncated_frame():
    with pytest.raises(PartialRead):
        await decode(b'\x81\x05Hel')


def test_close_frame_encoding():
    frame = WebSocketFrame.create_close_frame(WebSocketCloseCode.NORMAL, 'done')
    assert frame.encode() == b'\x88\x06' + struct.pack('!H', 1000) + b'done'

    assert WebSocketFrame.create_close_frame().encode() == b'\x88\x00'


def test_control_frames_are_limited_to_125_bytes():
    with pytest.raises(InvalidWebSocketControlFrame):
        WebSocketFrame.create_control_frame(b'a' * 126, opcode=WebSocketOpcode.PING)


def test_frame_head_bits():
    frame = WebSocketFrame.create(b'', opcode=WebSocketOpcode.BINARY, fin=False)
    assert not frame.fin
    assert frame.opcode is WebSocketOpcode.BINARY

    frame.fin = True
    frame.opcode = WebSocketOpcode.TEXT
    assert frame.fin
    assert frame.opcode is WebSocketOpcode.TEXT
    assert not frame.is_control()


def test_mask_is_its_own_inverse():
    mask = b'\x01\x02\x03\x04'
    data = b'some payload that is not a multiple of four'

    assert WebSocketFrame.mask(WebSocketFrame.mask(data, mask), mask) == data
    assert WebSocketFrame.mask(b'', mask) == b''


def test_data_helpers():
    data = Data(WebSocketOpcode.TEXT, b'{"a": [1, 2]}')

    assert data.is_text()
    assert not data.is_binary()
    assert data.text() == '{"a": [1, 2]}'
    assert data.json() == {'a': [1, 2]}
