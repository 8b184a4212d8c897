def _fn(name, inputs, outputs, mutability):
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
    }


VOTE_CONTRACT_ABI = [
    _fn("getAllBusinessIds", [], [("", "string[]")], "view"),
    _fn(
        "getBusinessData",
        [("businessId", "string")],
        [
            ("name", "string"),
            ("publicValue1", "uint256"),
            ("publicValue2", "uint256"),
            ("description", "string"),
            ("creator", "address"),
            ("timestamp", "uint256"),
            ("isVerified", "bool"),
            ("decryptedValue", "uint32"),
        ],
        "view",
    ),
    _fn("getEncryptedValue", [("businessId", "string")], [("", "bytes32")], "view"),
    _fn("isAvailable", [], [("", "bool")], "view"),
    _fn(
        "createBusinessData",
        [
            ("businessId", "string"),
            ("name", "string"),
            ("encryptedValue", "bytes32"),
            ("inputProof", "bytes"),
            ("publicValue1", "uint256"),
            ("publicValue2", "uint256"),
            ("description", "string"),
        ],
        [],
        "nonpayable",
    ),
    _fn(
        "verifyDecryption",
        [
            ("businessId", "string"),
            ("abiEncodedClearValue", "bytes"),
            ("decryptionProof", "bytes"),
        ],
        [],
        "nonpayable",
    ),
]
