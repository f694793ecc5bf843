from datetime import datetime, date

MESES = ('janeiro', 'fevereiro', 'março', 'abril', 'maio', 'junho', 'julho',
         'agosto', 'setembro', 'outubro', 'novembro', 'dezembro')


def to_frontend_str(date_obj):
    """
    Converte date/datetime ou string AAAA-MM-DD para DD/MM/AAAA.
    None ou vazio devolve string vazia.
    """
    if not date_obj:
        return ""

    if isinstance(date_obj, str):
        try:
            date_obj = datetime.strptime(date_obj[:10], '%Y-%m-%d').date()
        except ValueError:
            # Já pode estar em DD/MM/AAAA; devolve como veio
            return date_obj

    if isinstance(date_obj, (date, datetime)):
        return date_obj.strftime('%d/%m/%Y')

    return str(date_obj)


def to_datetime_str(value):
    """DD/MM/AAAA HH:MM, usado em comentários e no log de alterações."""
    if isinstance(value, datetime):
        return value.strftime('%d/%m/%Y %H:%M')
    return to_frontend_str(value)


def to_long_ptbr(value):
    """'18 de outubro de 2026'"""
    if isinstance(value, datetime):
        value = value.date()
    return f"{value.day:02d} de {MESES[value.month - 1]} de {value.year}"


def parse_date(date_input):
    """
    Converte string (AAAA-MM-DD ou DD/MM/AAAA) ou datetime num objeto date.
    Devolve None se não for possível.
    """
    if not date_input:
        return None

    if isinstance(date_input, datetime):
        return date_input.date()

    if isinstance(date_input, date):
        return date_input

    if isinstance(date_input, str):
        date_input = date_input.strip()
        for fmt in ('%Y-%m-%d', '%d/%m/%Y'):
            try:
                return datetime.strptime(date_input, fmt).date()
            except ValueError:
                pass

    return None
