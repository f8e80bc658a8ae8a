# Normalização de telefones de clientes (E.164, padrão BR +55)
import re

import phonenumbers

from lavajato.config import DEFAULT_PHONE_REGION

# Tamanho da coluna telefone (servicos e clientes)
MAX_PHONE_LENGTH = 20


def normalize_phone(val: str | None, default_region: str = DEFAULT_PHONE_REGION) -> str | None:
    """
    Tenta converter para E.164 (ex: "(11) 98888-7777" -> "+5511988887777").
    Retorna None se vazio; se não for um número válido, devolve o texto limpo.
    """
    if val is None:
        return None
    s = str(val).strip()
    if not s:
        return None
    digits = re.sub(r"[\s\-\(\)\.]", "", s)
    if not digits.replace("+", "").isdigit():
        return s
    try:
        parsed = phonenumbers.parse(digits, default_region)
    except phonenumbers.NumberParseException:
        return digits
    if phonenumbers.is_valid_number(parsed):
        return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
    return digits
