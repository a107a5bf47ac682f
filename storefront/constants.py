# Длина текста кода: 1..100 символов
CODE_MAX_LENGTH = 100
PRODUCT_ID_MAX_LENGTH = 100

# Для сгенерированных кодов выкидываем 0/O/1/I, чтобы не путали при вводе
GENERATED_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
GENERATED_CODE_LENGTH = 8

DEFAULT_ADMIN_ID = "admin"
