"""Bridge layer between mediaseal and its external authorities.

Each module wraps one outside system behind a narrow interface so the
pipeline can be driven by test doubles.

Modules
-------
crypto_bridge
    ``Signer`` protocol with Ed25519 (PyNaCl), RSA PKCS#1 v1.5
    (cryptography) and ML-DSA (pqcrypto) backends.
keys
    ``KeyHandle`` and one-time key pair generation on disk.
anchor_bridge
    ``AnchorClient`` protocol over OpenTimestamps calendar servers.
acquisition
    Downloads media with ``yt-dlp`` and registers it as pending work.
"""
