"""
UC: Insumos (cadastro) e livro de estoque.

- criar_material / atualizar_material / excluir_material / buscar_material
- listar_materiais(filtros) com estatísticas e listar_categorias_materiais
- ajustar_estoque(): entrada soma, saída subtrai sem deixar o estoque negativo

Obs.:
- Vendas nunca movimentam o estoque; o ajuste é sempre explícito.
- A gravação do ajuste usa compare-and-swap sobre o valor lido.
"""

from __future__ import annotations

import re
import sqlite3
from dataclasses import asdict, is_dataclass
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Union

from atelie.config import DB_PATH, DEFAULTS
from atelie.domain.errors import InsufficientStock, NotFound, TransactionAborted, ValidationFailed
from atelie.domain.formulas import arredondar, to_decimal
from atelie.domain.models import Material
from atelie.domain.policies import estoque_baixo
from atelie.infra.clock import SYSTEM_CLOCK, SystemClock
from atelie.infra.repositories import MaterialRepo
from atelie.infra.logger import (
    log_transaction, log_movimento, log_database_operation, log_system_event
)

CAMPOS_MATERIAL = (
    "nome", "categoria", "custo_unitario", "unidade", "estoque_atual", "estoque_minimo",
    "variacao", "conversoes", "ativo", "fornecedor", "observacoes", "imagem_url",
)
_VARIACAO_RE = re.compile(r"^[A-Z]$")
_TENTATIVAS_CAS = 3


def _str_or_none(x: Any) -> Optional[str]:
    if x is None:
        return None
    s = str(x).strip()
    return s or None


def _nao_negativo(dados: Mapping[str, Any], campo: str, erros: List[str], default: Optional[str] = None) -> Optional[Decimal]:
    try:
        v = to_decimal(dados.get(campo), Decimal(default) if default is not None else None)
    except ValueError:
        erros.append(f"{campo} é obrigatório e deve ser numérico")
        return None
    if v < 0:
        erros.append(f"{campo} deve ser >= 0")
    return v


def _validar_conversoes(valor: Any, erros: List[str]) -> Dict[str, str]:
    if valor in (None, ""):
        return {}
    if not isinstance(valor, Mapping):
        erros.append("conversoes deve ser um mapa unidade -> fator")
        return {}
    out: Dict[str, str] = {}
    for unidade, fator in valor.items():
        nome = str(unidade).strip()
        try:
            f = to_decimal(fator)
        except ValueError:
            erros.append(f"fator de '{nome}' inválido")
            continue
        if not nome or f <= 0:
            erros.append(f"fator de '{nome}' deve ser > 0")
            continue
        out[nome] = str(f)
    return out


def _normalizar(dados: Mapping[str, Any], parcial: bool = False) -> Dict[str, Any]:
    """Valida e normaliza os campos de um insumo. Em modo parcial só os presentes."""
    desconhecidos = sorted(set(dados) - set(CAMPOS_MATERIAL))
    erros: List[str] = [f"campo desconhecido: {k}" for k in desconhecidos]
    out: Dict[str, Any] = {}

    def tem(campo: str) -> bool:
        return not parcial or campo in dados

    if tem("nome"):
        nome = _str_or_none(dados.get("nome")) or ""
        if not 2 <= len(nome) <= 100:
            erros.append("nome deve ter entre 2 e 100 caracteres")
        out["nome"] = nome
    if tem("categoria"):
        out["categoria"] = _str_or_none(dados.get("categoria")) or DEFAULTS.categoria
    if tem("custo_unitario"):
        out["custo_unitario"] = _nao_negativo(dados, "custo_unitario", erros)
    if tem("unidade"):
        out["unidade"] = _str_or_none(dados.get("unidade")) or DEFAULTS.unidade_base
    if tem("estoque_atual"):
        out["estoque_atual"] = _nao_negativo(dados, "estoque_atual", erros, "0")
    if tem("estoque_minimo"):
        out["estoque_minimo"] = _nao_negativo(dados, "estoque_minimo", erros, DEFAULTS.estoque_minimo)
    if tem("variacao"):
        variacao = _str_or_none(dados.get("variacao"))
        if variacao is not None:
            variacao = variacao.upper()
            if not _VARIACAO_RE.match(variacao):
                erros.append("variacao deve ser uma única letra A-Z")
        out["variacao"] = variacao
    if tem("conversoes"):
        out["conversoes"] = _validar_conversoes(dados.get("conversoes"), erros)
    if tem("ativo"):
        out["ativo"] = True if dados.get("ativo") is None else bool(dados.get("ativo"))
    for campo in ("fornecedor", "observacoes", "imagem_url"):
        if tem(campo):
            # imagem_url "" limpa a imagem
            out[campo] = _str_or_none(dados.get(campo))

    if erros:
        raise ValidationFailed("Dados inválidos", erros)
    return out


def _checar_duplicado(repo: MaterialRepo, nome: str, variacao: Optional[str], ignorar_id: Optional[int] = None) -> None:
    existente = repo.find_by_nome_variacao(nome, variacao)
    if existente and existente["id"] != ignorar_id:
        rotulo = f"{nome} ({variacao})" if variacao else nome
        raise ValidationFailed("Insumo duplicado", [f"já existe insumo {rotulo}"])


def _com_indicadores(m: Dict[str, Any]) -> Dict[str, Any]:
    m["estoque_baixo"] = estoque_baixo(m["estoque_atual"], m["estoque_minimo"])
    m["valor_estoque"] = arredondar(m["estoque_atual"] * m["custo_unitario"])
    return m


def criar_material(dados: Union[Mapping[str, Any], Material], db_path: str = DB_PATH, clock: SystemClock = SYSTEM_CLOCK) -> Dict[str, Any]:
    """Cadastra um insumo novo e devolve o registro gravado."""
    if is_dataclass(dados):
        dados = asdict(dados)
    log_system_event("criar_material_start", {"nome": dados.get("nome")})
    try:
        row = _normalizar(dados)
        repo = MaterialRepo(db_path)
        _checar_duplicado(repo, row["nome"], row["variacao"])
        agora = clock.now().isoformat(timespec="seconds")
        row.update(criado_em=agora, atualizado_em=agora)
        try:
            material_id = repo.insert(row)
        except sqlite3.IntegrityError as e:
            raise ValidationFailed("Insumo duplicado", [str(e)]) from e
        log_database_operation("material", "INSERT", 1, id=material_id, nome=row["nome"])
        out = _com_indicadores(repo.get(material_id))
        log_transaction("criar_material", {"nome": row["nome"]}, result={"id": material_id})
        return out
    except Exception as e:
        log_transaction("criar_material", {"nome": dados.get("nome")}, error=str(e))
        log_system_event("criar_material_error", {"error": str(e)}, level="error")
        raise


def buscar_material(material_id: int, db_path: str = DB_PATH) -> Dict[str, Any]:
    m = MaterialRepo(db_path).get(material_id)
    if m is None:
        raise NotFound("Insumo", material_id)
    return _com_indicadores(m)


def atualizar_material(
    material_id: int, dados: Mapping[str, Any], db_path: str = DB_PATH, clock: SystemClock = SYSTEM_CLOCK,
) -> Dict[str, Any]:
    """Atualização parcial: só os campos informados mudam."""
    try:
        repo = MaterialRepo(db_path)
        atual = repo.get(material_id)
        if atual is None:
            raise NotFound("Insumo", material_id)
        campos = _normalizar(dados, parcial=True)
        if "nome" in campos or "variacao" in campos:
            _checar_duplicado(
                repo,
                campos.get("nome", atual["nome"]),
                campos.get("variacao", atual["variacao"]),
                ignorar_id=material_id,
            )
        campos["atualizado_em"] = clock.now().isoformat(timespec="seconds")
        try:
            n = repo.update(material_id, campos)
        except sqlite3.IntegrityError as e:
            raise ValidationFailed("Insumo duplicado", [str(e)]) from e
        log_database_operation("material", "UPDATE", n, id=material_id, campos=sorted(campos))
        log_transaction("atualizar_material", {"id": material_id}, result="success")
        return buscar_material(material_id, db_path)
    except Exception as e:
        log_transaction("atualizar_material", {"id": material_id}, error=str(e))
        raise


def excluir_material(material_id: int, db_path: str = DB_PATH) -> None:
    repo = MaterialRepo(db_path)
    if repo.get(material_id) is None:
        raise NotFound("Insumo", material_id)
    n = repo.delete(material_id)
    log_database_operation("material", "DELETE", n, id=material_id)


def listar_materiais(
    categoria: Optional[str] = None,
    ativo: Optional[bool] = True,
    busca: Optional[str] = None,
    somente_estoque_baixo: bool = False,
    ordenar: str = "nome",
    direcao: str = "ASC",
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Lista insumos com filtros e devolve também as estatísticas da lista."""
    materiais = [
        _com_indicadores(m)
        for m in MaterialRepo(db_path).list(categoria, ativo, busca, ordenar, direcao)
    ]
    if somente_estoque_baixo:
        materiais = [m for m in materiais if m["estoque_baixo"]]
    stats = {
        "total": len(materiais),
        "valor_total_estoque": arredondar(sum((m["valor_estoque"] for m in materiais), Decimal("0"))),
        "estoque_baixo": sum(1 for m in materiais if m["estoque_baixo"]),
    }
    log_database_operation("material", "SELECT_LIST", len(materiais))
    return {"materiais": materiais, "stats": stats}


def listar_categorias_materiais(db_path: str = DB_PATH) -> List[str]:
    return MaterialRepo(db_path).categorias()


def ajustar_estoque(
    material_id: int,
    tipo: str,
    quantidade: Any,
    observacao: Optional[str] = None,
    db_path: str = DB_PATH,
    clock: SystemClock = SYSTEM_CLOCK,
) -> Dict[str, Any]:
    """Registra uma entrada ou saída de estoque.

    Raises:
        ValidationFailed: tipo fora de entrada/saida ou quantidade <= 0.
        NotFound: insumo inexistente.
        InsufficientStock: a saída deixaria o estoque negativo.
        TransactionAborted: o estoque mudou concorrentemente em todas as tentativas.
    """
    data = {"material_id": material_id, "tipo": tipo, "quantidade": str(quantidade)}
    try:
        if tipo not in ("entrada", "saida"):
            raise ValidationFailed("Tipo inválido", ['tipo deve ser "entrada" ou "saida"'])
        try:
            qtd = to_decimal(quantidade)
        except ValueError:
            raise ValidationFailed("Quantidade inválida", ["quantidade deve ser numérica"]) from None
        if qtd <= 0:
            raise ValidationFailed("Quantidade inválida", ["quantidade deve ser maior que zero"])

        repo = MaterialRepo(db_path)
        for tentativa in range(1, _TENTATIVAS_CAS + 1):
            m = repo.get(material_id)
            if m is None:
                raise NotFound("Insumo", material_id)
            anterior = m["estoque_atual"]
            novo = anterior + qtd if tipo == "entrada" else anterior - qtd
            if novo < 0:
                raise InsufficientStock(m["nome"], anterior, qtd)
            if repo.compare_and_set_estoque(material_id, anterior, novo, clock.now().isoformat(timespec="seconds")):
                break
            log_system_event("estoque_cas_conflito", {"material_id": material_id, "tentativa": tentativa}, level="warning")
        else:
            raise TransactionAborted(f"Estoque do insumo {material_id} alterado concorrentemente")

        log_movimento(tipo, material_id, qtd, anterior=str(anterior), atual=str(novo), observacao=observacao)
        result = {
            "insumo": m["nome"],
            "estoque_anterior": anterior,
            "movimento": f"+{qtd}" if tipo == "entrada" else f"-{qtd}",
            "estoque_atual": novo,
            "observacao": observacao,
            "estoque_baixo": estoque_baixo(novo, m["estoque_minimo"]),
        }
        log_transaction("ajustar_estoque", data, result=result)
        return result
    except Exception as e:
        log_transaction("ajustar_estoque", data, error=str(e))
        raise
