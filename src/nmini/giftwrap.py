import json
import random
from datetime import datetime
from nmini.signing import CryptoProvider, BasicKeySigner
from nmini.encrypt import Keys
from nmini.event.event import Event
from nmini.exception import GiftWrapException
from nmini.util import util_funcs


class GiftWrap:
    """
        implementation of NIP59 https://github.com/nostr-protocol/nips/blob/master/59.md
    """
    def __init__(self, signer: CryptoProvider):
        self._signer = signer
        # jitter is upto 2 days from now
        self._jitter = 60 * 60 * 24 * 2

    def get_jittered_created_ticks(self):
        return util_funcs.date_as_ticks(datetime.now()) - random.SystemRandom().randint(0, self._jitter)

    async def make_rumor(self, evt: Event) -> Event:
        """
            A rumor is the same thing as an unsigned event, we copy evt with us as the author
            and no sig, the id is forced so it's there when serialised
        """
        ret = Event(kind=evt.kind,
                    content=evt.content,
                    tags=[list(c_tag) for c_tag in evt.tags],
                    pub_key=await self._signer.get_public_key(),
                    created_at=evt.created_at_ticks)
        ret.id
        return ret

    async def _make_seal(self,
                         rumor_evt: Event,
                         to_pub_k: str) -> Event:

        if rumor_evt.sig:
            raise GiftWrapException('GiftWrap::_make_seal: rumor event should not be signed!')

        ret = Event(kind=Event.KIND_SEAL,
                    content=await self._signer.nip44_encrypt(plain_text=json.dumps(rumor_evt.rumor_data()),
                                                             to_pub_k=to_pub_k),
                    created_at=self.get_jittered_created_ticks(),
                    pub_key=await self._signer.get_public_key(),
                    tags=[])

        await self._signer.sign_event(ret)
        return ret

    async def wrap_rumor(self, rumor_evt: Event, to_pub_k: Keys | str) -> Event:
        """
            seal the rumor and wrap it for to_pub_k, the wrap is signed by a throw away key
        """
        if isinstance(to_pub_k, Keys):
            to_pub_k = to_pub_k.public_key_hex()

        sealed_evt = await self._make_seal(rumor_evt, to_pub_k)

        rnd_sign = BasicKeySigner(Keys())

        ret = Event(kind=Event.KIND_GIFT_WRAP,
                    pub_key=await rnd_sign.get_public_key(),
                    created_at=self.get_jittered_created_ticks(),
                    content=await rnd_sign.nip44_encrypt(plain_text=json.dumps(sealed_evt.data()),
                                                         to_pub_k=to_pub_k),
                    tags=[
                        ['p', to_pub_k]
                    ])

        await rnd_sign.sign_event(ret)
        return ret

    async def wrap(self, evt: Event, to_pub_k: Keys | str) -> Event:
        return await self.wrap_rumor(await self.make_rumor(evt), to_pub_k)

    async def _unwrap(self, evt: Event) -> dict:
        plain_text = await self._signer.nip44_decrypt(evt.content, evt.pub_key)
        return json.loads(plain_text)

    async def unwrap(self, evt: Event) -> tuple[str, Event]:
        """
            returns (pub_k of who sealed it, rumor). The sealer is who sent it, the rumor pubkey is just what
            they put in there so they may not match
        """
        if evt.kind != Event.KIND_GIFT_WRAP:
            raise GiftWrapException(f'event {evt.short_id} is kind {evt.kind} not a gift wrap')

        to_pub_k = evt.get_tag_value_pos('p')
        our_pub_k = await self._signer.get_public_key()

        if to_pub_k is None:
            raise GiftWrapException('wrapped event is not addressed to anyone, no p tags!')
        if to_pub_k != our_pub_k:
            raise GiftWrapException(f'wrapped event is not addressed to us,'
                                    f' {util_funcs.str_tails(our_pub_k)} != {util_funcs.str_tails(to_pub_k)}')

        try:
            seal_evt = Event.load(await self._unwrap(evt))
        except Exception as e:
            raise GiftWrapException(f'unable to open gift wrap {evt.short_id}') from e

        if seal_evt.kind != Event.KIND_SEAL:
            raise GiftWrapException(f'expected seal in gift wrap {evt.short_id} got kind {seal_evt.kind}')
        if not seal_evt.is_valid():
            raise GiftWrapException(f'seal in gift wrap {evt.short_id} is not signed correctly')

        try:
            rumor_data = await self._unwrap(seal_evt)
            # the id is always our calc, whatever they say
            rumor_data.pop('id', None)
            rumor_evt = Event.load(rumor_data)
        except Exception as e:
            raise GiftWrapException(f'unable to open seal {seal_evt.short_id}') from e

        # rumor pubkey is whatever the sender put in, it's never been checked by a sig
        try:
            Keys.parse_public(rumor_evt.pub_key)
        except (ValueError, AttributeError) as e:
            raise GiftWrapException(f'rumor in seal {seal_evt.short_id} has invalid pubkey') from e

        return seal_evt.pub_key, rumor_evt
