"""
Fórmulas de custo, preço e fechamento de venda.

Aritmética de precificação do ateliê: custo de insumo com conversão de
unidade, custo da ficha técnica, preço de venda a partir da margem sobre
o preço, simulação de margens e fechamento da venda com desconto por
faixa de quantidade.

As funções são puras: dependem apenas dos argumentos e não acessam o
banco nem os logs. Valores monetários são ``Decimal`` arredondados para
centavos (meio para cima) sempre que reportados.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .errors import NotFound, UnresolvedUnitConversion, ValidationFailed
from .policies import percentual_desconto

Number = Union[int, float, str, Decimal]

CENT = Decimal("0.01")
ZERO = Decimal("0")
CEM = Decimal("100")


def to_decimal(value: Any, default: Optional[Decimal] = None) -> Decimal:
    """Converte ``value`` em ``Decimal``.

    Aceita vírgula como separador decimal. ``float`` passa por ``str``
    para não herdar o ruído binário. Valores vazios devolvem ``default``
    quando informado.

    Raises
    ------
    ValueError
        Se o valor não for numérico (ou vazio sem ``default``).
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is not None:
            return default
        raise ValueError("valor numérico ausente")
    if isinstance(value, bool):
        raise ValueError(f"valor numérico inválido: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    else:
        try:
            result = Decimal(str(value).strip().replace(",", "."))
        except InvalidOperation:
            raise ValueError(f"valor numérico inválido: {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"valor numérico inválido: {value!r}")
    return result


def arredondar(valor: Number) -> Decimal:
    """Arredonda para centavos (meio para cima)."""
    return to_decimal(valor).quantize(CENT, rounding=ROUND_HALF_UP)


# ----------------------
# Conversão de unidades
# ----------------------

def fator_conversao(material: Mapping[str, Any], unidade: str) -> Decimal:
    """Fator F (unidades alternativas por unidade base) de ``unidade``.

    ``material['conversoes']`` é um mapa aberto ``{unidade: F}`` em que
    ``1 unidade base = F unidades alternativas``. Entrada ausente, fator
    não positivo ou conversões que não são um mapa contam como conversão
    não resolvida.
    """
    conversoes = material.get("conversoes") or {}
    nome = str(material.get("nome") or material.get("id") or "?")
    base = material.get("unidade") or ""
    if not isinstance(conversoes, Mapping) or unidade not in conversoes:
        raise UnresolvedUnitConversion(nome, unidade, base)
    try:
        fator = to_decimal(conversoes[unidade])
    except ValueError:
        raise UnresolvedUnitConversion(nome, unidade, base) from None
    if fator <= 0:
        raise UnresolvedUnitConversion(nome, unidade, base)
    return fator


def converter_para_base(quantidade: Number, unidade: Optional[str], material: Mapping[str, Any]) -> Decimal:
    """Converte uma quantidade na unidade usada para a unidade base do insumo."""
    q = to_decimal(quantidade)
    if not unidade or unidade == material.get("unidade"):
        return q
    return q / fator_conversao(material, unidade)


def custo_insumo(quantidade: Number, unidade_usada: Optional[str], material: Mapping[str, Any]) -> Decimal:
    """Custo de ``quantidade`` de um insumo expressa em ``unidade_usada``.

    - mesma unidade da base: ``q * custo_unitario``
    - outra unidade: ``(q / F) * custo_unitario``, com ``F`` das conversões

    O valor volta sem arredondar; quem soma arredonda o agregado.

    Raises
    ------
    UnresolvedUnitConversion
        Se a unidade difere da base e não há fator utilizável.
    """
    custo_unitario = to_decimal(material.get("custo_unitario"), ZERO)
    return converter_para_base(quantidade, unidade_usada, material) * custo_unitario


# ----------------------
# Custos do produto
# ----------------------

def somar_custos_adicionais(custos: Optional[Mapping[str, Any]]) -> Decimal:
    """Soma os custos adicionais; entradas ausentes ou inválidas valem 0."""
    total = ZERO
    for valor in (custos or {}).values():
        try:
            v = to_decimal(valor, ZERO)
        except ValueError:
            continue
        if v > 0:
            total += v
    return total


def preco_venda(custo_total: Number, margem_percentual: Number) -> Decimal:
    """Preço de venda para uma margem sobre o preço (lucro / preço).

    - ``custo_total == 0``      → 0
    - ``margem >= 100``         → ``custo_total * 10`` (saturação)
    - demais casos              → ``custo_total / (1 - margem / 100)``
    """
    custo = to_decimal(custo_total, ZERO)
    margem = to_decimal(margem_percentual, ZERO)
    if custo == 0:
        return arredondar(ZERO)
    if margem >= CEM:
        return arredondar(custo * 10)
    return arredondar(custo / (1 - margem / CEM))


def margem_real(preco: Number, custo: Number) -> Decimal:
    """Margem realizada em % sobre o preço (0 se o preço for 0)."""
    p = to_decimal(preco, ZERO)
    if p == 0:
        return arredondar(ZERO)
    return arredondar((p - to_decimal(custo, ZERO)) / p * CEM)


def calcular_custos_produto(
    usos: Iterable[Mapping[str, Any]],
    materiais: Mapping[Any, Mapping[str, Any]],
    mao_de_obra_horas: Number,
    mao_de_obra_custo_hora: Number,
    margem_lucro: Number,
    custos_adicionais: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Decimal]:
    """Calcula os campos de custo derivados de um produto.

    Parameters
    ----------
    usos:
        Ficha técnica, cada linha ``{insumo_id, quantidade, unidade}``.
    materiais:
        Insumos por id (``custo_unitario``, ``unidade``, ``conversoes``).
    mao_de_obra_horas, mao_de_obra_custo_hora:
        Horas de trabalho e valor da hora.
    margem_lucro:
        Margem desejada em % do preço de venda.
    custos_adicionais:
        Custos fixos extras (embalagem, tag, adesivo, brinde, outros).

    Returns
    -------
    dict
        ``custo_insumos``, ``custo_mao_de_obra``, ``custo_adicional``,
        ``custo_total``, ``preco_venda``, ``lucro_unidade`` e
        ``margem_real``, todos em centavos.
    """
    custo_insumos = ZERO
    for uso in usos:
        insumo_id = uso.get("insumo_id")
        material = materiais.get(insumo_id)
        if material is None:
            raise NotFound("Insumo", insumo_id)
        custo_insumos += custo_insumo(uso.get("quantidade"), uso.get("unidade"), material)

    horas = to_decimal(mao_de_obra_horas, ZERO)
    custo_hora = to_decimal(mao_de_obra_custo_hora, ZERO)

    custo_insumos = arredondar(custo_insumos)
    custo_mao_de_obra = arredondar(horas * custo_hora)
    custo_adicional = arredondar(somar_custos_adicionais(custos_adicionais))
    custo_total = custo_insumos + custo_mao_de_obra + custo_adicional
    preco = preco_venda(custo_total, margem_lucro)

    return {
        "custo_insumos": custo_insumos,
        "custo_mao_de_obra": custo_mao_de_obra,
        "custo_adicional": custo_adicional,
        "custo_total": custo_total,
        "preco_venda": preco,
        "lucro_unidade": preco - custo_total,
        "margem_real": margem_real(preco, custo_total),
    }


def simular_margens(custo_total: Number, margens: Iterable[Number]) -> List[Dict[str, Decimal]]:
    """Preço e lucro para cada margem candidata, sem efeitos colaterais."""
    custo = arredondar(to_decimal(custo_total, ZERO))
    out: List[Dict[str, Decimal]] = []
    for m in margens:
        margem = to_decimal(m)
        preco = preco_venda(custo, margem)
        out.append({
            "margem": margem,
            "preco_venda": preco,
            "lucro": preco - custo,
            "margem_real": margem_real(preco, custo),
        })
    return out


# ----------------------
# Fechamento de venda
# ----------------------

def calcular_item_venda(
    produto: Mapping[str, Any],
    quantidade: int,
    margem_simulada: Optional[Number] = None,
    eh_brinde: bool = False,
) -> Dict[str, Any]:
    """Preço, custo e lucro de uma linha de venda.

    O produto fornece ``custo_total`` e ``preco_venda`` gravados. Com margem
    simulada o preço unitário é recalculado a partir do custo por
    :func:`preco_venda`; sem ela vale o preço gravado.
    """
    if isinstance(quantidade, bool) or not isinstance(quantidade, int) or quantidade < 1:
        raise ValidationFailed("Quantidade inválida", [f"quantidade deve ser inteiro >= 1: {quantidade!r}"])

    custo_unitario = arredondar(to_decimal(produto.get("custo_total"), ZERO))
    preco_original = arredondar(to_decimal(produto.get("preco_venda"), ZERO))
    margem = None if margem_simulada is None else to_decimal(margem_simulada)
    preco_final = preco_venda(custo_unitario, margem) if margem is not None else preco_original

    valor_total = preco_final * quantidade
    custo_total = custo_unitario * quantidade
    return {
        "produto_id": produto.get("id"),
        "produto_nome": produto.get("nome"),
        "quantidade": quantidade,
        "preco_unitario_original": preco_original,
        "margem_simulada": margem,
        "preco_unitario_final": preco_final,
        "valor_total": valor_total,
        "custo_unitario": custo_unitario,
        "custo_total": custo_total,
        "lucro": valor_total - custo_total,
        "eh_brinde": bool(eh_brinde),
    }


def calcular_totais_venda(itens: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """Soma as linhas da venda e aplica o desconto por faixa de quantidade.

    ``quantidade_total`` soma a quantidade de todas as linhas, brindes
    incluídos, e define a faixa de desconto.
    """
    subtotal = ZERO
    custo_total = ZERO
    quantidade_total = 0
    for item in itens:
        subtotal += to_decimal(item.get("valor_total"), ZERO)
        custo_total += to_decimal(item.get("custo_total"), ZERO)
        quantidade_total += int(item.get("quantidade") or 0)

    subtotal = arredondar(subtotal)
    custo_total = arredondar(custo_total)
    pct = percentual_desconto(quantidade_total)
    desconto = arredondar(subtotal * pct / CEM)
    total = subtotal - desconto
    lucro_total = total - custo_total

    return {
        "subtotal": subtotal,
        "quantidade_total": quantidade_total,
        "desconto_percentual": pct,
        "desconto_valor": desconto,
        "total": total,
        "custo_total": custo_total,
        "lucro_total": lucro_total,
        "margem_real": margem_real(total, custo_total),
    }
