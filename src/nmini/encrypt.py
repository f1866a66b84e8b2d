"""
    nostr keys in hex/bech32 and NIP44 v2 encryption as used by gift wraps
"""
from __future__ import annotations
from enum import Enum
from hashlib import sha256
import hmac
import base64
from math import floor, log2
from Crypto.Cipher import ChaCha20
from Crypto.Random import get_random_bytes
import secp256k1
import bech32
from nmini.util import util_funcs


class KeyTypeFormat(Enum):
    """
        output formats for key-convert, value is what's given on the command line
    """
    SECRET_HEX = 'shex'
    SECRET_BECH32 = 'sbech32'
    PUBLIC_HEX = 'phex'
    PUBLIC_BECH32 = 'pbech32'

    @property
    def is_secret(self) -> bool:
        return self in (KeyTypeFormat.SECRET_HEX, KeyTypeFormat.SECRET_BECH32)


class Keys:

    @staticmethod
    def get_new_key_pair(priv_key=None):
        """
        :param priv_key: private key in hex str format
        where priv_key is not supplied a new priv key is generated

        :return:
        {
            priv_k : hex_str
            pub_k : hex_str
        }
        """
        if priv_key is None:
            pk = secp256k1.PrivateKey()
        else:
            pk = secp256k1.PrivateKey(bytes.fromhex(priv_key), raw=True)

        return {
            'priv_k': pk.serialize(),
            # get rid of 02 prefix, nostr keys are x only
            'pub_k': pk.pubkey.serialize(compressed=True).hex()[2:]
        }

    @staticmethod
    def is_hex_key(key: str):
        """
            returns true if looks like valid hex string for nostr key its not possible to tell if priv/pub
        """
        ret = False
        if len(key) == 64:
            # and also hex, will throw otherwise
            try:
                bytes.fromhex(key)
                ret = True
            except ValueError:
                pass
        return ret

    @staticmethod
    def hex_to_bech32(key_str: str, prefix='npub'):
        data = bech32.convertbits(bytes.fromhex(key_str), 8, 5)
        return bech32.bech32_encode(prefix, data)

    @staticmethod
    def bech32_to_hex(key: str, prefix: str = None):
        # should be the reverese of hex_to_bech32...
        hrp, data = bech32.bech32_decode(key)
        if hrp is None:
            raise ValueError(f'invalid bech32 key {key}')
        if prefix is not None and hrp != prefix:
            raise ValueError(f'expected {prefix} got {hrp}')

        as_bytes = bech32.convertbits(data, 5, 8, False)
        if as_bytes is None or len(as_bytes) != 32:
            raise ValueError(f'invalid {hrp} data')
        return bytes(as_bytes).hex()

    @staticmethod
    def parse(key: str) -> Keys:
        """
            secret first, npub is the only form that can't be read as one, then public.
            Note a 64 char hex is always taken as a secret
        """
        if isinstance(key, Keys):
            return key

        key = key.strip()
        try:
            ret = Keys(priv_k=key)
        except ValueError:
            ret = None

        if ret is None:
            ret = Keys(pub_k=key)
        return ret

    @staticmethod
    def parse_public(key: str) -> Keys:
        return Keys(pub_k=key.strip())

    @staticmethod
    def _check_pub_k(pub_k: str):
        # raises if x isn't on the curve
        try:
            secp256k1.PublicKey(bytes.fromhex('02' + pub_k), raw=True)
        except Exception as e:
            raise ValueError(f'public key is not a valid point - {pub_k}') from e

    def __init__(self, priv_k: str = None, pub_k: str = None):
        """
        :param priv_k: hex/nsec
        :param pub_k: hex/npub

        If no keys supplied then a new key pair will be generated, internally we keep them as hex
        if only pub_k is supplied the private key methods just return None
        """

        # internal hex format
        self._priv_k = None
        self._pub_k = None

        # nothing supplied generate new keys
        if priv_k is None and pub_k is None:
            k_pair = self.get_new_key_pair()
            self._priv_k = k_pair['priv_k']
            self._pub_k = k_pair['pub_k']
        elif priv_k is not None:
            priv_k = priv_k.lower()
            if priv_k.startswith('npub'):
                raise ValueError('attempt to use npub as private key')
            if priv_k.startswith('nsec'):
                priv_k = Keys.bech32_to_hex(priv_k, 'nsec')
            elif not Keys.is_hex_key(priv_k):
                raise ValueError(f'private key doesn\'t look like hex or nsec - {util_funcs.str_tails(priv_k)}')

            try:
                k_pair = self.get_new_key_pair(priv_k)
            except Exception as e:
                raise ValueError('private key is not a valid secret') from e

            if pub_k and k_pair['pub_k'] != Keys(pub_k=pub_k).public_key_hex():
                raise ValueError('attempt to create key with mismatched keypair')
            self._pub_k = k_pair['pub_k']
            self._priv_k = k_pair['priv_k']
        # only pub_k supplied, won't be able to sign
        else:
            pub_k = pub_k.lower()
            if pub_k.startswith('npub'):
                pub_k = Keys.bech32_to_hex(pub_k, 'npub')
            elif not Keys.is_hex_key(pub_k):
                raise ValueError(f'public key doesn\'t look like hex or npub - {pub_k}')
            Keys._check_pub_k(pub_k)
            self._pub_k = pub_k

    def private_key_hex(self):
        return self._priv_k

    def private_key_bech32(self):
        ret = None
        if self._priv_k:
            ret = self.hex_to_bech32(self._priv_k, 'nsec')
        return ret

    def public_key_hex(self):
        return self._pub_k

    def public_key_bech32(self):
        return self.hex_to_bech32(self._pub_k)

    def convert(self, to_format: KeyTypeFormat) -> str:
        if to_format.is_secret and self._priv_k is None:
            raise ValueError('can not get private key from public key')

        return {
            KeyTypeFormat.SECRET_HEX: self.private_key_hex,
            KeyTypeFormat.SECRET_BECH32: self.private_key_bech32,
            KeyTypeFormat.PUBLIC_HEX: self.public_key_hex,
            KeyTypeFormat.PUBLIC_BECH32: self.public_key_bech32
        }[to_format]()

    def __eq__(self, other):
        return isinstance(other, Keys) and other.public_key_hex() == self._pub_k

    def __hash__(self):
        return hash(self._pub_k)

    def __str__(self):
        # never the private key
        return self.public_key_bech32()


class DecryptionException(Exception):
    pass


class NIP44Encrypt:
    """
        base functionality for implementing NIP44
        https://github.com/paulmillr/nip44
    """

    NIP44_PAD_MIN = 1
    NIP44_PAD_MAX = 65535

    # we only support v2 which is sha256 hash and this hash
    V2_HASH = sha256
    V2_SALT = b'nip44-v2'

    def __init__(self, key: Keys | str):
        if isinstance(key, str):
            key = Keys(priv_k=key)
        if key.private_key_hex() is None:
            raise ValueError(f'{self.__class__.__name__}::__init__ a key that can sign is required')

        self._key = key
        self._priv_k = secp256k1.PrivateKey(bytes.fromhex(self._key.private_key_hex()), raw=True)

    def public_key_hex(self) -> str:
        return self._key.public_key_hex()

    # hkdf functions taken and modified from https://en.wikipedia.org/wiki/HKDF
    @staticmethod
    def _hmac_digest(key: bytes, data: bytes, hash_func) -> bytes:
        return hmac.new(key, data, hash_func).digest()

    @staticmethod
    def _hkdf_extract(salt: bytes, ikm: bytes, hash_function) -> bytes:
        if len(salt) == 0:
            salt = bytes([0] * hash_function().digest_size)
        return NIP44Encrypt._hmac_digest(salt, ikm, hash_function)

    @staticmethod
    def _hkdf_expand(prk: bytes, info: bytes, length: int, hashfunction) -> bytes:
        t = b''
        okm = b''
        i = 0
        while len(okm) < length:
            i += 1
            t = NIP44Encrypt._hmac_digest(prk, t + info + bytes([i]), hashfunction)
            okm += t
        return okm[:length]

    @staticmethod
    def _hmac_aad(key, message, aad, hash_function) -> bytes:
        if len(aad) != 32:
            raise DecryptionException('AAD associated data must be 32 bytes')

        return NIP44Encrypt._hmac_digest(key=key,
                                         data=aad+message,
                                         hash_func=hash_function)

    @staticmethod
    def _calc_padded_len(unpadded_len):
        next_power = 32
        if unpadded_len > 1:
            next_power = 1 << (floor(log2(unpadded_len - 1))) + 1

        if next_power <= 256:
            chunk = 32
        else:
            chunk = int(next_power / 8)
        if unpadded_len <= 32:
            return 32
        else:
            return chunk * (floor((unpadded_len - 1) / chunk) + 1)

    @staticmethod
    def _pad(plaintext: str) -> bytes:
        plaintext = plaintext.encode('utf-8')
        unpadded_len = len(plaintext)

        if unpadded_len < NIP44Encrypt.NIP44_PAD_MIN or unpadded_len > NIP44Encrypt.NIP44_PAD_MAX:
            raise ValueError('invalid plaintext length')

        padded_length = NIP44Encrypt._calc_padded_len(unpadded_len)

        prefix = unpadded_len.to_bytes(length=2, byteorder='big', signed=False)
        sufix = bytes(padded_length - unpadded_len)

        return prefix + plaintext + sufix

    @staticmethod
    def _unpad(padded: bytes) -> bytes:
        msg_len = int.from_bytes(padded[:2], byteorder='big')
        ret = padded[2:msg_len + 2]

        if msg_len == 0 \
                or len(ret) != msg_len \
                or NIP44Encrypt._calc_padded_len(len(ret)) + 2 != len(padded):
            raise DecryptionException('nip44 invalid padding')

        return ret

    @staticmethod
    def _decode_payload(payload: str) -> tuple[bytes, bytes, bytes]:
        p_size = len(payload)
        if p_size < 132 or p_size > 87472:
            raise DecryptionException(f'invalid payload size {p_size}')

        data = base64.b64decode(payload)
        d_size = len(data)

        if d_size < 99 or d_size > 65603:
            raise DecryptionException(f'invalid data size {d_size}')

        version = data[0]
        nonce = data[1:33]
        cipher_text = data[33:d_size-32]
        mac = data[d_size-32:]

        # only current/supported version
        if version != 2:
            raise DecryptionException(f'nip44 unsupported version {version}')

        return nonce, cipher_text, mac

    def _get_conversation_key(self, for_pub_k: str) -> bytes:
        the_pub = secp256k1.PublicKey(pubkey=bytes.fromhex('02' + for_pub_k), raw=True)

        # ECDH mult for shared key, we only want x
        tweaked_key = the_pub.tweak_mul(self._priv_k.private_key)

        return NIP44Encrypt._hkdf_extract(salt=NIP44Encrypt.V2_SALT,
                                          ikm=tweaked_key.serialize()[1:],
                                          hash_function=NIP44Encrypt.V2_HASH)

    @staticmethod
    def _get_message_key(conversion_key: bytes, nonce: bytes) -> tuple[bytes, bytes, bytes]:

        if len(nonce) != 32:
            raise DecryptionException('NIP44Encrypt::_get_message_key nonce is not 32 bytes long')

        msg_key = NIP44Encrypt._hkdf_expand(prk=conversion_key,
                                            info=nonce,
                                            length=76,
                                            hashfunction=NIP44Encrypt.V2_HASH)

        chacha_key = msg_key[0:32]
        chacha_nonce = msg_key[32:44]
        hmac_key = msg_key[44:76]

        return chacha_key, chacha_nonce, hmac_key

    @staticmethod
    def _make_payload(cipher_text: bytes, hmac_key: bytes, nonce: bytes, version: int) -> str:
        if version != 2:
            raise ValueError(f'NIP44Encrypt::_make_payload unsupported version {version}')

        mac = NIP44Encrypt._hmac_aad(key=hmac_key,
                                     message=cipher_text,
                                     aad=nonce,
                                     hash_function=NIP44Encrypt.V2_HASH)

        payload = version.to_bytes(1, byteorder='big') + nonce + cipher_text + mac
        return base64.b64encode(payload).decode('utf-8')

    def encrypt(self, plain_text: str, to_pub_k: str, version: int = 2) -> str:
        con_key = self._get_conversation_key(for_pub_k=to_pub_k)
        nonce = get_random_bytes(32)

        chacha_key, chacha_nonce, hmac_key = self._get_message_key(conversion_key=con_key,
                                                                   nonce=nonce)

        cipher_text = ChaCha20.new(key=chacha_key,
                                   nonce=chacha_nonce).encrypt(self._pad(plain_text))

        return self._make_payload(cipher_text=cipher_text,
                                  hmac_key=hmac_key,
                                  nonce=nonce,
                                  version=version)

    def decrypt(self, payload: str, for_pub_k: str) -> str:
        nonce, ciper_text, mac = self._decode_payload(payload)

        con_key = self._get_conversation_key(for_pub_k)

        chacha_key, chacha_nonce, hmac_key = self._get_message_key(conversion_key=con_key,
                                                                   nonce=nonce)

        calculated_mac = NIP44Encrypt._hmac_aad(key=hmac_key,
                                                message=ciper_text,
                                                aad=nonce,
                                                hash_function=NIP44Encrypt.V2_HASH)

        if not hmac.compare_digest(calculated_mac, mac):
            raise DecryptionException('invalid MAC')

        padded = ChaCha20.new(key=chacha_key,
                              nonce=chacha_nonce).decrypt(ciper_text)

        return NIP44Encrypt._unpad(padded=padded).decode('utf-8')
