import abc
import hashlib
from typing_extensions import override

import structlog
import tink
from anyio import to_thread
from eth_abi import encode
from tink import aead, mac

from ..models.exceptions import CoprocessorError, NotInitializedError
from ..models.vote_models import DecryptionResult, EncryptedInput, SubmitProof

logger = structlog.stdlib.get_logger()


class EncryptionGateway(abc.ABC):
    """Turns a plaintext integer into an external ciphertext plus input proof."""

    @property
    @abc.abstractmethod
    def is_initialized(self) -> bool:
        pass

    @abc.abstractmethod
    async def initialize(self) -> None:
        """Prepare the encryption subsystem. Safe to call more than once."""
        pass

    @abc.abstractmethod
    async def encrypt(
        self, contract_address: str, caller_address: str, value: int
    ) -> EncryptedInput:
        """Encrypt value for use by caller_address on contract_address."""
        pass


class DecryptionGateway(abc.ABC):
    """Runs the reveal protocol for a set of ciphertext handles."""

    @abc.abstractmethod
    async def verify(
        self,
        handles: list[str],
        contract_address: str,
        submit_proof: SubmitProof,
    ) -> DecryptionResult:
        """
        Reveal the clear values behind handles. submit_proof is awaited with the
        ABI-encoded clear values and the decryption proof; its failure fails the
        whole protocol.
        """
        pass


def _handle_bytes(handle: str) -> bytes:
    return bytes.fromhex(handle.removeprefix("0x"))


class LocalCoprocessor(EncryptionGateway, DecryptionGateway):
    """
    Development co-processor that uses Google Tink in place of FHE.
    Ciphertexts stay in a local store addressed by 32 byte handles. Input and
    decryption proofs are HMAC tags, which the in-memory ledger checks.
    DO NOT USE IN PRODUCTION.
    """

    _ciphertexts: dict[str, bytes]
    _aead: aead.Aead | None
    _mac: mac.Mac | None

    def __init__(self):
        aead.register()
        mac.register()
        self._ciphertexts = {}
        self._aead = None
        self._mac = None

    @property
    @override
    def is_initialized(self) -> bool:
        return self._aead is not None and self._mac is not None

    @override
    async def initialize(self) -> None:
        if self.is_initialized:
            return

        def _generate_keys() -> tuple[aead.Aead, mac.Mac]:
            aead_handle = tink.new_keyset_handle(aead.aead_key_templates.AES256_GCM)
            mac_handle = tink.new_keyset_handle(
                mac.mac_key_templates.HMAC_SHA256_256BITTAG
            )
            return aead_handle.primitive(aead.Aead), mac_handle.primitive(mac.Mac)

        self._aead, self._mac = await to_thread.run_sync(_generate_keys)
        logger.info("coprocessor.initialized")

    def _primitives(self) -> tuple[aead.Aead, mac.Mac]:
        if self._aead is None or self._mac is None:
            raise NotInitializedError("Encryption subsystem is not initialized")
        return self._aead, self._mac

    @staticmethod
    def _input_binding(
        handle: str, contract_address: str, caller_address: str
    ) -> bytes:
        return b"|".join(
            [
                _handle_bytes(handle),
                contract_address.lower().encode(),
                caller_address.lower().encode(),
            ]
        )

    @override
    async def encrypt(
        self, contract_address: str, caller_address: str, value: int
    ) -> EncryptedInput:
        aead_primitive, mac_primitive = self._primitives()
        if not 0 <= value < 2**32:
            raise CoprocessorError(f"Value {value} does not fit in a uint32")

        def _encrypt() -> tuple[str, bytes]:
            ciphertext = aead_primitive.encrypt(
                value.to_bytes(4, "big"), contract_address.lower().encode()
            )
            handle = "0x" + hashlib.sha256(ciphertext).hexdigest()
            self._ciphertexts[handle] = ciphertext
            proof = mac_primitive.compute_mac(
                self._input_binding(handle, contract_address, caller_address)
            )
            return handle, proof

        handle, proof = await to_thread.run_sync(_encrypt)
        return EncryptedInput(ciphertext=_handle_bytes(handle), proof=proof)

    def verify_input_proof(
        self, handle: str, contract_address: str, caller_address: str, proof: bytes
    ) -> bool:
        _, mac_primitive = self._primitives()
        try:
            mac_primitive.verify_mac(
                proof, self._input_binding(handle, contract_address, caller_address)
            )
        except tink.TinkError:
            return False
        return True

    def check_signatures(
        self, handles: list[str], clear_values_encoded: bytes, proof: bytes
    ) -> bool:
        _, mac_primitive = self._primitives()
        data = b"".join(_handle_bytes(h) for h in handles) + clear_values_encoded
        try:
            mac_primitive.verify_mac(proof, data)
        except tink.TinkError:
            return False
        return True

    @override
    async def verify(
        self,
        handles: list[str],
        contract_address: str,
        submit_proof: SubmitProof,
    ) -> DecryptionResult:
        aead_primitive, mac_primitive = self._primitives()

        def _decrypt() -> dict[str, int]:
            clear_values: dict[str, int] = {}
            for handle in handles:
                ciphertext = self._ciphertexts.get(handle)
                if ciphertext is None:
                    raise CoprocessorError(f"Unknown ciphertext handle {handle}")
                try:
                    plaintext = aead_primitive.decrypt(
                        ciphertext, contract_address.lower().encode()
                    )
                except tink.TinkError as e:
                    raise CoprocessorError(
                        f"Handle {handle} is not decryptable for {contract_address}"
                    ) from e
                clear_values[handle] = int.from_bytes(plaintext, "big")
            return clear_values

        clear_values = await to_thread.run_sync(_decrypt)
        encoded = encode(["uint32"] * len(handles), [clear_values[h] for h in handles])
        proof = mac_primitive.compute_mac(
            b"".join(_handle_bytes(h) for h in handles) + encoded
        )

        logger.debug("coprocessor.decrypted", handles=len(handles))
        receipt = await submit_proof(encoded, proof)
        return DecryptionResult(clear_values=clear_values, receipt=receipt)
