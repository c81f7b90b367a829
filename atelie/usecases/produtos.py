"""
UC: Produtos (ficha técnica, custos e preço).

- criar_produto / atualizar_produto: validam e recalculam os campos derivados
- recalcular_custos(): atualiza os derivados com os custos atuais dos insumos
- calcular_custos(): prévia sem gravar
- simular_precos(): preço e lucro para uma lista de margens
- buscar_produto / listar_produtos / listar_categorias_produtos / excluir_produto

Obs.:
- custo_insumos, custo_mao_de_obra, custo_adicional, custo_total e
  preco_venda ficam gravados como cache e só mudam por estas funções.
"""

from __future__ import annotations

import sqlite3
from dataclasses import asdict, is_dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from atelie.config import DB_PATH, DEFAULTS
from atelie.domain.errors import NotFound, UnresolvedUnitConversion, ValidationFailed
from atelie.domain.formulas import (
    arredondar, calcular_custos_produto, converter_para_base, custo_insumo,
    margem_real, simular_margens, to_decimal,
)
from atelie.domain.models import CUSTOS_ADICIONAIS, Produto
from atelie.infra.clock import SYSTEM_CLOCK, SystemClock
from atelie.infra.repositories import MaterialRepo, ProdutoRepo
from atelie.infra.logger import (
    log_transaction, log_database_operation, log_system_event
)

CAMPOS_PRODUTO = (
    "nome", "descricao", "categoria", "mao_de_obra_horas", "mao_de_obra_custo_hora",
    "margem_lucro", "insumos", "custos_adicionais", "ativo", "imagem_url",
)
DERIVADOS = ("custo_insumos", "custo_mao_de_obra", "custo_adicional", "custo_total", "preco_venda")
PARAMETROS_CUSTO = ("insumos", "mao_de_obra_horas", "mao_de_obra_custo_hora", "margem_lucro", "custos_adicionais")


def _str_or_none(x: Any) -> Optional[str]:
    if x is None:
        return None
    s = str(x).strip()
    return s or None


def _decimal_faixa(valor: Any, campo: str, erros: List[str], default: str,
                   minimo: Decimal = Decimal("0"), maximo: Optional[Decimal] = None) -> Optional[Decimal]:
    try:
        v = to_decimal(valor, Decimal(default))
    except ValueError:
        erros.append(f"{campo} deve ser numérico")
        return None
    if v < minimo or (maximo is not None and v > maximo):
        faixa = f"entre {minimo} e {maximo}" if maximo is not None else f">= {minimo}"
        erros.append(f"{campo} deve estar {faixa}")
    return v


def _validar_usos(valor: Any, erros: List[str]) -> List[Dict[str, Any]]:
    if valor in (None, ""):
        return []
    if not isinstance(valor, (list, tuple)):
        erros.append("insumos deve ser uma lista")
        return []
    out: List[Dict[str, Any]] = []
    for i, uso in enumerate(valor, start=1):
        if is_dataclass(uso):
            uso = asdict(uso)
        if not isinstance(uso, Mapping):
            erros.append(f"insumo #{i}: formato inválido")
            continue
        try:
            insumo_id = int(uso.get("insumo_id"))
        except (TypeError, ValueError):
            erros.append(f"insumo #{i}: insumo_id inválido")
            continue
        try:
            qtd = to_decimal(uso.get("quantidade"))
        except ValueError:
            erros.append(f"insumo #{i}: quantidade inválida")
            continue
        if qtd <= 0:
            erros.append(f"insumo #{i}: quantidade deve ser > 0")
            continue
        out.append({"insumo_id": insumo_id, "quantidade": str(qtd), "unidade": _str_or_none(uso.get("unidade"))})
    return out


def _validar_custos_adicionais(valor: Any, erros: List[str]) -> Dict[str, str]:
    if valor in (None, ""):
        return {}
    if not isinstance(valor, Mapping):
        erros.append("custos_adicionais deve ser um mapa")
        return {}
    out: Dict[str, str] = {}
    for chave, v in valor.items():
        if chave not in CUSTOS_ADICIONAIS:
            erros.append(f"custo adicional desconhecido: {chave}")
            continue
        d = _decimal_faixa(v, chave, erros, "0")
        if d is not None:
            out[chave] = str(d)
    return out


def _normalizar(dados: Mapping[str, Any], parcial: bool = False) -> Dict[str, Any]:
    erros: List[str] = [f"campo desconhecido: {k}" for k in sorted(set(dados) - set(CAMPOS_PRODUTO))]
    out: Dict[str, Any] = {}

    def tem(campo: str) -> bool:
        return not parcial or campo in dados

    if tem("nome"):
        nome = _str_or_none(dados.get("nome")) or ""
        if not 2 <= len(nome) <= 100:
            erros.append("nome deve ter entre 2 e 100 caracteres")
        out["nome"] = nome
    if tem("descricao"):
        out["descricao"] = _str_or_none(dados.get("descricao"))
    if tem("categoria"):
        out["categoria"] = _str_or_none(dados.get("categoria")) or DEFAULTS.categoria
    if tem("mao_de_obra_horas"):
        out["mao_de_obra_horas"] = _decimal_faixa(
            dados.get("mao_de_obra_horas"), "mao_de_obra_horas", erros, DEFAULTS.mao_de_obra_horas)
    if tem("mao_de_obra_custo_hora"):
        out["mao_de_obra_custo_hora"] = _decimal_faixa(
            dados.get("mao_de_obra_custo_hora"), "mao_de_obra_custo_hora", erros, DEFAULTS.mao_de_obra_custo_hora)
    if tem("margem_lucro"):
        out["margem_lucro"] = _decimal_faixa(
            dados.get("margem_lucro"), "margem_lucro", erros, DEFAULTS.margem_lucro, maximo=Decimal("1000"))
    if tem("insumos"):
        out["insumos"] = _validar_usos(dados.get("insumos"), erros)
    if tem("custos_adicionais"):
        out["custos_adicionais"] = _validar_custos_adicionais(dados.get("custos_adicionais"), erros)
    if tem("ativo"):
        out["ativo"] = True if dados.get("ativo") is None else bool(dados.get("ativo"))
    if tem("imagem_url"):
        out["imagem_url"] = _str_or_none(dados.get("imagem_url"))

    if erros:
        raise ValidationFailed("Dados inválidos", erros)
    return out


def _materiais_dos_usos(usos: Iterable[Mapping[str, Any]], db_path: str) -> Dict[int, Dict[str, Any]]:
    usos = list(usos)
    materiais = MaterialRepo(db_path).get_many(u["insumo_id"] for u in usos)
    faltando = sorted({u["insumo_id"] for u in usos} - set(materiais))
    if faltando:
        raise ValidationFailed("Insumos inexistentes", [f"insumo {i} não encontrado" for i in faltando])
    return materiais


def _calcular(row: Mapping[str, Any], db_path: str) -> Dict[str, Any]:
    """Completa a unidade dos usos e calcula custos, preço, lucro e margem."""
    materiais = _materiais_dos_usos(row["insumos"], db_path)
    usos = [
        dict(u, unidade=u.get("unidade") or materiais[u["insumo_id"]]["unidade"])
        for u in row["insumos"]
    ]
    calc = calcular_custos_produto(
        usos, materiais,
        row["mao_de_obra_horas"], row["mao_de_obra_custo_hora"], row["margem_lucro"],
        row["custos_adicionais"],
    )
    calc["insumos"] = usos
    return calc


def _derivados(row: Mapping[str, Any], db_path: str) -> Dict[str, Any]:
    """Somente as colunas gravadas: usos completos e campos derivados."""
    calc = _calcular(row, db_path)
    return {k: calc[k] for k in DERIVADOS + ("insumos",)}


def _com_indicadores(p: Dict[str, Any]) -> Dict[str, Any]:
    p["lucro_unidade"] = p["preco_venda"] - p["custo_total"]
    p["margem_real"] = margem_real(p["preco_venda"], p["custo_total"])
    return p


def checar_ficha_tecnica(produto: Mapping[str, Any], substituidos: Iterable[str] = ()) -> None:
    """Falha quando insumos ou custos adicionais gravados não puderam ser lidos.

    Campos em ``substituidos`` serão sobrescritos pela operação e não contam.
    """
    corrompidos = [
        c for c in ("insumos", "custos_adicionais")
        if produto.get(c) is None and c not in substituidos
    ]
    if corrompidos:
        log_system_event("produto_json_corrompido", {"id": produto.get("id"), "campos": corrompidos}, level="warning")
        raise ValidationFailed(
            f"Ficha técnica ilegível no produto {produto.get('id')}",
            [f"{c} corrompido" for c in corrompidos],
        )


def _checar_nome(repo: ProdutoRepo, nome: str, ignorar_id: Optional[int] = None) -> None:
    existente = repo.get_by_nome(nome)
    if existente and existente["id"] != ignorar_id:
        raise ValidationFailed("Produto duplicado", [f"já existe produto com nome {nome}"])


def criar_produto(dados: Union[Mapping[str, Any], Produto], db_path: str = DB_PATH, clock: SystemClock = SYSTEM_CLOCK) -> Dict[str, Any]:
    """Cadastra um produto calculando custos e preço de venda."""
    if is_dataclass(dados):
        dados = asdict(dados)
    log_system_event("criar_produto_start", {"nome": dados.get("nome")})
    try:
        row = _normalizar(dados)
        repo = ProdutoRepo(db_path)
        _checar_nome(repo, row["nome"])
        row.update(_derivados(row, db_path))
        agora = clock.now().isoformat(timespec="seconds")
        row.update(criado_em=agora, atualizado_em=agora)
        try:
            produto_id = repo.insert(row)
        except sqlite3.IntegrityError as e:
            raise ValidationFailed("Produto duplicado", [str(e)]) from e
        log_database_operation("produto", "INSERT", 1, id=produto_id, custo_total=str(row["custo_total"]))
        log_transaction("criar_produto", {"nome": row["nome"]}, result={"id": produto_id, "preco_venda": str(row["preco_venda"])})
        return _com_indicadores(repo.get(produto_id))
    except Exception as e:
        log_transaction("criar_produto", {"nome": dados.get("nome")}, error=str(e))
        log_system_event("criar_produto_error", {"error": str(e)}, level="error")
        raise


def atualizar_produto(
    produto_id: int, dados: Mapping[str, Any], db_path: str = DB_PATH, clock: SystemClock = SYSTEM_CLOCK,
) -> Dict[str, Any]:
    """Atualização parcial; os derivados são sempre recalculados."""
    try:
        repo = ProdutoRepo(db_path)
        atual = repo.get(produto_id)
        if atual is None:
            raise NotFound("Produto", produto_id)
        campos = _normalizar(dados, parcial=True)
        checar_ficha_tecnica(atual, substituidos=campos)
        if "nome" in campos:
            _checar_nome(repo, campos["nome"], ignorar_id=produto_id)
        base = {
            "insumos": atual["insumos"],
            "custos_adicionais": atual["custos_adicionais"],
            "mao_de_obra_horas": atual["mao_de_obra_horas"],
            "mao_de_obra_custo_hora": atual["mao_de_obra_custo_hora"],
            "margem_lucro": atual["margem_lucro"],
        }
        base.update({k: v for k, v in campos.items() if k in base})
        campos.update(base)
        campos.update(_derivados(base, db_path))
        campos["atualizado_em"] = clock.now().isoformat(timespec="seconds")
        try:
            n = repo.update(produto_id, campos)
        except sqlite3.IntegrityError as e:
            raise ValidationFailed("Produto duplicado", [str(e)]) from e
        log_database_operation("produto", "UPDATE", n, id=produto_id)
        log_transaction("atualizar_produto", {"id": produto_id}, result="success")
        return _com_indicadores(repo.get(produto_id))
    except Exception as e:
        log_transaction("atualizar_produto", {"id": produto_id}, error=str(e))
        raise


def recalcular_custos(produto_id: int, db_path: str = DB_PATH, clock: SystemClock = SYSTEM_CLOCK) -> Dict[str, Any]:
    """Recalcula os derivados com os custos atuais dos insumos e grava.

    Returns:
        ``{"produto": ..., "calculos": {...}, "alterado": bool}``.
    """
    try:
        repo = ProdutoRepo(db_path)
        produto = repo.get(produto_id)
        if produto is None:
            raise NotFound("Produto", produto_id)
        checar_ficha_tecnica(produto)
        derivados = _derivados({
            "insumos": produto["insumos"],
            "custos_adicionais": produto["custos_adicionais"],
            "mao_de_obra_horas": produto["mao_de_obra_horas"],
            "mao_de_obra_custo_hora": produto["mao_de_obra_custo_hora"],
            "margem_lucro": produto["margem_lucro"],
        }, db_path)
        alterado = any(derivados[k] != produto[k] for k in DERIVADOS)
        if alterado:
            campos = {k: derivados[k] for k in DERIVADOS}
            campos["atualizado_em"] = clock.now().isoformat(timespec="seconds")
            repo.update(produto_id, campos)
            log_database_operation("produto", "UPDATE_CUSTOS", 1, id=produto_id, custo_total=str(derivados["custo_total"]))
        calculos = {k: derivados[k] for k in DERIVADOS}
        log_transaction("recalcular_custos", {"id": produto_id}, result={"alterado": alterado})
        return {"produto": _com_indicadores(repo.get(produto_id)), "calculos": calculos, "alterado": alterado}
    except Exception as e:
        log_transaction("recalcular_custos", {"id": produto_id}, error=str(e))
        raise


def calcular_custos(dados: Mapping[str, Any], db_path: str = DB_PATH) -> Dict[str, Decimal]:
    """Prévia dos custos e do preço para os dados de um formulário, sem gravar."""
    row = _normalizar({k: dados.get(k) for k in PARAMETROS_CUSTO}, parcial=True)
    calc = _calcular(row, db_path)
    calc.pop("insumos")
    return calc


def simular_precos(produto_id: int, margens: Optional[List[Any]] = None, db_path: str = DB_PATH) -> Dict[str, Any]:
    produto = ProdutoRepo(db_path).get(produto_id)
    if produto is None:
        raise NotFound("Produto", produto_id)
    margens = list(margens) if margens else list(DEFAULTS.margens_simulacao)
    return {
        "produto": produto["nome"],
        "custo_total": produto["custo_total"],
        "margem_atual": produto["margem_lucro"],
        "preco_atual": produto["preco_venda"],
        "simulacoes": simular_margens(produto["custo_total"], margens),
    }


def buscar_produto(produto_id: int, db_path: str = DB_PATH) -> Dict[str, Any]:
    """Produto com o detalhamento de cada insumo da ficha técnica."""
    produto = ProdutoRepo(db_path).get(produto_id)
    if produto is None:
        raise NotFound("Produto", produto_id)
    usos = produto["insumos"] or []
    materiais = MaterialRepo(db_path).get_many(u["insumo_id"] for u in usos)
    detalhes = []
    for uso in usos:
        m = materiais.get(uso["insumo_id"])
        custo = None
        if m is not None:
            try:
                custo = arredondar(custo_insumo(uso["quantidade"], uso.get("unidade"), m))
            except UnresolvedUnitConversion as e:
                log_system_event("conversao_nao_resolvida", {"produto_id": produto_id, "erro": str(e)}, level="warning")
        detalhes.append({
            "insumo_id": uso["insumo_id"],
            "nome": m["nome"] if m else None,
            "variacao": m["variacao"] if m else None,
            "quantidade": to_decimal(uso["quantidade"]),
            "unidade": uso.get("unidade"),
            "custo_unitario": m["custo_unitario"] if m else None,
            "custo": custo,
        })
    produto["insumos_detalhados"] = detalhes
    return _com_indicadores(produto)


def listar_produtos(
    categoria: Optional[str] = None,
    ativo: Optional[bool] = True,
    busca: Optional[str] = None,
    ordenar: str = "nome",
    direcao: str = "ASC",
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    produtos = [_com_indicadores(p) for p in ProdutoRepo(db_path).list(categoria, ativo, busca, ordenar, direcao)]
    zero = Decimal("0")
    stats = {
        "total": len(produtos),
        "valor_total_custo": sum((p["custo_total"] for p in produtos), zero),
        "faturamento_potencial": sum((p["preco_venda"] for p in produtos), zero),
        "lucro_potencial": sum((p["lucro_unidade"] for p in produtos), zero),
    }
    log_database_operation("produto", "SELECT_LIST", len(produtos))
    return {"produtos": produtos, "stats": stats}


def listar_categorias_produtos(db_path: str = DB_PATH) -> List[str]:
    return ProdutoRepo(db_path).categorias()


def excluir_produto(produto_id: int, db_path: str = DB_PATH) -> None:
    """Exclusão definitiva; itens de venda mantêm os dados desnormalizados."""
    repo = ProdutoRepo(db_path)
    if repo.get(produto_id) is None:
        raise NotFound("Produto", produto_id)
    n = repo.delete(produto_id)
    log_database_operation("produto", "DELETE", n, id=produto_id)


def snapshot_insumos(produto: Mapping[str, Any], materiais: Mapping[int, Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Registro histórico dos insumos de um produto no momento da venda.

    ``quantidade_base`` é a quantidade por unidade de produto na unidade
    base do insumo, ou ``None`` quando não há conversão.
    """
    out = []
    for uso in produto.get("insumos") or []:
        m = materiais.get(uso["insumo_id"])
        quantidade_base = None
        if m is not None:
            try:
                quantidade_base = str(converter_para_base(uso["quantidade"], uso.get("unidade"), m))
            except UnresolvedUnitConversion:
                quantidade_base = None
        out.append({
            "insumo_id": uso["insumo_id"],
            "nome": m["nome"] if m else None,
            "quantidade": str(uso["quantidade"]),
            "unidade": uso.get("unidade"),
            "unidade_base": m["unidade"] if m else None,
            "quantidade_base": quantidade_base,
        })
    return out
