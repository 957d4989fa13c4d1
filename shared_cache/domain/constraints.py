MAX_KEY_LENGTH = 256
