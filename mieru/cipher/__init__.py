"""AES-GCM block ciphers with PBKDF2 keys derived from time-based salts."""