# atelie/usecases/relatorios.py
"""
Relatórios e estatísticas do ateliê:
- resumo geral (painel)
- evolução mensal das vendas (últimos 12 meses)
- insumos mais usados nas fichas técnicas
- rentabilidade dos produtos
- previsão de esgotamento do estoque
- vendas por período (dia/semana/mês)
- ranking de produtos e de clientes

Somente vendas finalizadas entram nas somas. Dados corrompidos ou sem
conversão de unidade não derrubam o relatório: a linha é ignorada e um
aviso vai para o log do sistema.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from atelie.config import DB_PATH, DEFAULTS
from atelie.domain.errors import UnresolvedUnitConversion, ValidationFailed
from atelie.domain.formulas import ZERO, arredondar, converter_para_base, margem_real, to_decimal
from atelie.domain.policies import FINALIZADA, SITUACOES, estoque_baixo, situacao_estoque
from atelie.infra.clock import SYSTEM_CLOCK, SystemClock
from atelie.infra.migrations import apply_migrations
from atelie.infra.views import create_views
from atelie.infra.repositories import MaterialRepo, ProdutoRepo, VendaRepo
from atelie.infra.logger import (
    log_system_event, log_database_operation, system_logger
)

AGRUPAMENTOS = ("dia", "semana", "mes")


# ----------------------
# util
# ----------------------

def _preparar(db_path: str) -> None:
    apply_migrations(db_path)
    create_views(db_path)


def validar_periodo(data_inicio: Optional[str], data_fim: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Normaliza as datas (AAAA-MM-DD) e garante início <= fim."""
    out = []
    for nome, valor in (("data_inicio", data_inicio), ("data_fim", data_fim)):
        if not valor:
            out.append(None)
            continue
        try:
            out.append(date.fromisoformat(str(valor).strip()[:10]).isoformat())
        except ValueError:
            raise ValidationFailed("Período inválido", [f"{nome} deve estar em AAAA-MM-DD"]) from None
    inicio, fim = out
    if inicio and fim and inicio > fim:
        raise ValidationFailed("Período inválido", ["data_inicio deve ser anterior ou igual a data_fim"])
    return inicio, fim


def _finalizadas(db_path: str, data_inicio: Optional[str] = None, data_fim: Optional[str] = None) -> List[Dict[str, Any]]:
    vendas, total = VendaRepo(db_path).list(FINALIZADA, data_inicio, data_fim, ascending=True)
    log_database_operation("venda_cabecalho", "SELECT_FINALIZADAS", total)
    return vendas


def _soma(valores) -> Decimal:
    return sum(valores, ZERO)


def _ano_mes(d: str) -> str:
    return d[:7]


def _ultimos_meses(hoje: date, n: int = 12) -> List[str]:
    """Chaves AAAA-MM dos últimos ``n`` meses, do mais antigo até o atual."""
    ano, mes = hoje.year, hoje.month
    out = []
    for _ in range(n):
        out.append(f"{ano:04d}-{mes:02d}")
        mes -= 1
        if mes == 0:
            ano, mes = ano - 1, 12
    return list(reversed(out))


def _inicio_semana(d: date) -> date:
    # semanas começam no domingo
    return d - timedelta(days=(d.weekday() + 1) % 7)


# ----------------------
# 1) Resumo geral
# ----------------------

def resumo_geral(db_path: str = DB_PATH, clock: SystemClock = SYSTEM_CLOCK) -> Dict[str, Any]:
    """Painel com contadores, estoque, financeiro e produtos mais lucrativos."""
    log_system_event("resumo_geral_start")
    try:
        _preparar(db_path)
        hoje = clock.today()
        hoje_iso = hoje.isoformat()
        inicio_mes = hoje.replace(day=1).isoformat()
        inicio_ano = hoje.replace(month=1, day=1).isoformat()

        materiais = MaterialRepo(db_path).list(ativo=True)
        produtos = ProdutoRepo(db_path).list(ativo=True)
        vendas = _finalizadas(db_path)
        vendas_mes = [v for v in vendas if v["data"] >= inicio_mes]
        vendas_ano = [v for v in vendas if v["data"] >= inicio_ano]

        baixos = [m for m in materiais if estoque_baixo(m["estoque_atual"], m["estoque_minimo"])]
        faturamento_mes = _soma(v["total"] for v in vendas_mes)
        lucro_mes = _soma(v["lucro_total"] for v in vendas_mes)
        custo_mes = faturamento_mes - lucro_mes

        lucrativos = sorted(
            (
                {
                    "id": p["id"],
                    "nome": p["nome"],
                    "lucro_unidade": p["preco_venda"] - p["custo_total"],
                    "margem_real": margem_real(p["preco_venda"], p["custo_total"]),
                    "preco_venda": p["preco_venda"],
                }
                for p in produtos
            ),
            key=lambda r: r["lucro_unidade"],
            reverse=True,
        )[:5]

        resumo = {
            "contadores": {
                "insumos": len(materiais),
                "produtos": len(produtos),
                "vendas": len(vendas),
                "vendas_hoje": sum(1 for v in vendas if v["data"] == hoje_iso),
                "vendas_mes": len(vendas_mes),
                "vendas_ano": len(vendas_ano),
            },
            "estoque": {
                "valor_total_insumos": arredondar(_soma(m["estoque_atual"] * m["custo_unitario"] for m in materiais)),
                "valor_estoque_produtos": arredondar(_soma(p["custo_total"] for p in produtos)),
                "faturamento_potencial": arredondar(_soma(p["preco_venda"] for p in produtos)),
                "insumos_estoque_baixo": len(baixos),
                "alertas_estoque": [
                    {
                        "id": m["id"],
                        "nome": m["nome"],
                        "variacao": m["variacao"],
                        "estoque_atual": m["estoque_atual"],
                        "estoque_minimo": m["estoque_minimo"],
                    }
                    for m in baixos
                ],
            },
            "financeiro": {
                "faturamento_mes": arredondar(faturamento_mes),
                "lucro_mes": arredondar(lucro_mes),
                "faturamento_ano": arredondar(_soma(v["total"] for v in vendas_ano)),
                "lucro_ano": arredondar(_soma(v["lucro_total"] for v in vendas_ano)),
                # markup sobre o custo do mês
                "margem_mes": arredondar(lucro_mes / custo_mes * 100) if faturamento_mes > 0 and custo_mes != 0 else arredondar(ZERO),
                "ticket_medio_mes": arredondar(faturamento_mes / len(vendas_mes)) if vendas_mes else arredondar(ZERO),
            },
            "produtos_mais_lucrativos": lucrativos,
            "gerado_em": clock.now().isoformat(timespec="seconds"),
        }
        log_system_event("resumo_geral_success", {"vendas": len(vendas), "estoque_baixo": len(baixos)})
        return resumo
    except Exception as e:
        log_system_event("resumo_geral_error", {"error": str(e)}, level="error")
        raise


# ----------------------
# 2) Evolução mensal
# ----------------------

def evolucao_vendas_mensal(db_path: str = DB_PATH, clock: SystemClock = SYSTEM_CLOCK) -> List[Dict[str, Any]]:
    """Últimos 12 meses (incluindo o atual); meses sem venda aparecem zerados."""
    _preparar(db_path)
    meses = _ultimos_meses(clock.today())
    por_mes = {
        m: {"mes": m, "quantidade": 0, "faturamento": ZERO, "lucro": ZERO, "numero_vendas": 0}
        for m in meses
    }
    for v in _finalizadas(db_path, data_inicio=f"{meses[0]}-01"):
        linha = por_mes.get(_ano_mes(v["data"]))
        if linha is None:
            continue
        linha["quantidade"] += v["quantidade_total"]
        linha["faturamento"] += v["total"]
        linha["lucro"] += v["lucro_total"]
        linha["numero_vendas"] += 1

    out = []
    for m in meses:
        linha = por_mes[m]
        n = linha["numero_vendas"]
        out.append(dict(
            linha,
            faturamento=arredondar(linha["faturamento"]),
            lucro=arredondar(linha["lucro"]),
            ticket_medio=arredondar(linha["faturamento"] / n) if n else arredondar(ZERO),
        ))
    return out


# ----------------------
# 3) Insumos mais usados
# ----------------------

def materiais_mais_usados(db_path: str = DB_PATH) -> List[Dict[str, Any]]:
    """Quantidade de cada insumo nas fichas técnicas dos produtos ativos.

    As quantidades são somadas na unidade base do insumo; usos sem
    conversão possível ficam fora da soma (aviso no log).
    """
    _preparar(db_path)
    produtos = ProdutoRepo(db_path).list(ativo=True)
    usos = []
    for p in produtos:
        if p["insumos"] is None:
            log_system_event("produto_json_corrompido", {"produto_id": p["id"]}, level="warning")
            continue
        usos.extend((p["id"], u) for u in p["insumos"])
    materiais = MaterialRepo(db_path).get_many(u["insumo_id"] for _, u in usos)

    acumulado: Dict[int, Dict[str, Any]] = {}
    for produto_id, uso in usos:
        m = materiais.get(uso["insumo_id"])
        if m is None:
            log_system_event("insumo_inexistente", {"produto_id": produto_id, "insumo_id": uso["insumo_id"]}, level="warning")
            continue
        try:
            qtd = converter_para_base(uso["quantidade"], uso.get("unidade"), m)
        except (UnresolvedUnitConversion, ValueError) as e:
            log_system_event("conversao_nao_resolvida", {"produto_id": produto_id, "erro": str(e)}, level="warning")
            continue
        linha = acumulado.setdefault(m["id"], {
            "insumo_id": m["id"],
            "nome": m["nome"],
            "variacao": m["variacao"],
            "categoria": m["categoria"],
            "unidade": m["unidade"],
            "custo_unitario": m["custo_unitario"],
            "quantidade_total_usada": ZERO,
            "produtos_que_utilizam": 0,
        })
        linha["quantidade_total_usada"] += qtd
        linha["produtos_que_utilizam"] += 1

    out = []
    for linha in acumulado.values():
        linha["valor_total_utilizado"] = arredondar(linha["quantidade_total_usada"] * linha["custo_unitario"])
        out.append(linha)
    out.sort(key=lambda r: r["quantidade_total_usada"], reverse=True)
    return out


# ----------------------
# 4) Rentabilidade
# ----------------------

def analise_rentabilidade(db_path: str = DB_PATH) -> Dict[str, Any]:
    _preparar(db_path)
    analise = []
    for p in ProdutoRepo(db_path).list(ativo=True):
        analise.append({
            "id": p["id"],
            "nome": p["nome"],
            "categoria": p["categoria"],
            "custo_total": p["custo_total"],
            "preco_venda": p["preco_venda"],
            "lucro_unidade": p["preco_venda"] - p["custo_total"],
            "margem_real": margem_real(p["preco_venda"], p["custo_total"]),
            "margem_configurada": p["margem_lucro"],
            "custo_insumos": p["custo_insumos"],
            "custo_mao_de_obra": p["custo_mao_de_obra"],
            "horas": p["mao_de_obra_horas"],
            "custo_por_hora": p["mao_de_obra_custo_hora"],
        })
    analise.sort(key=lambda r: r["margem_real"], reverse=True)

    estatisticas: Dict[str, Any] = {
        "produto_mais_lucrativo": None,
        "produto_menor_margem": None,
        "produto_maior_margem": None,
        "margem_media": arredondar(ZERO),
        "lucro_medio_por_unidade": arredondar(ZERO),
    }
    if analise:
        n = len(analise)
        estatisticas.update(
            produto_mais_lucrativo=max(analise, key=lambda r: r["lucro_unidade"]),
            produto_menor_margem=min(analise, key=lambda r: r["margem_real"]),
            produto_maior_margem=max(analise, key=lambda r: r["margem_real"]),
            margem_media=arredondar(_soma(r["margem_real"] for r in analise) / n),
            lucro_medio_por_unidade=arredondar(_soma(r["lucro_unidade"] for r in analise) / n),
        )
    return {"produtos": analise, "estatisticas": estatisticas}


# ----------------------
# 5) Previsão de estoque
# ----------------------

def _consumo_do_snapshot(entrada: Dict[str, Any], quantidade: int, materiais: Dict[int, Dict[str, Any]]) -> Optional[Decimal]:
    """Consumo na unidade base para uma linha de venda, ou None se não converter."""
    if entrada.get("quantidade_base") is not None:
        return to_decimal(entrada["quantidade_base"]) * quantidade
    m = materiais.get(entrada.get("insumo_id"))
    if m is None:
        return None
    return converter_para_base(entrada.get("quantidade"), entrada.get("unidade"), m) * quantidade


def previsao_estoque(
    dias_analise: int = DEFAULTS.dias_analise, db_path: str = DB_PATH, clock: SystemClock = SYSTEM_CLOCK,
) -> Dict[str, Any]:
    """Previsão de esgotamento dos insumos ativos.

    O consumo vem dos registros históricos (insumos_snapshot) dos itens
    das vendas finalizadas nos últimos ``dias_analise`` dias.
    """
    if dias_analise < 1:
        raise ValidationFailed("Período inválido", ["dias_analise deve ser >= 1"])
    log_system_event("previsao_estoque_start", {"dias_analise": dias_analise})
    try:
        _preparar(db_path)
        hoje = clock.today()
        inicio = (hoje - timedelta(days=dias_analise)).isoformat()
        vendas = _finalizadas(db_path, data_inicio=inicio, data_fim=hoje.isoformat())
        itens = VendaRepo(db_path).items_by_venda(v["id"] for v in vendas)
        materiais = {m["id"]: m for m in MaterialRepo(db_path).list(ativo=None)}

        consumo: Dict[int, Decimal] = {}
        for linhas in itens.values():
            for linha in linhas:
                snapshot = linha["insumos_snapshot"]
                if snapshot is None:
                    log_system_event("snapshot_corrompido", {"item_id": linha["id"]}, level="warning")
                    continue
                for entrada in snapshot:
                    try:
                        q = _consumo_do_snapshot(entrada, linha["quantidade"], materiais)
                    except (UnresolvedUnitConversion, ValueError) as e:
                        q = None
                        system_logger.debug(f"PREVISAO: {e}")
                    if q is None:
                        log_system_event("snapshot_sem_conversao", {
                            "item_id": linha["id"], "insumo_id": entrada.get("insumo_id"),
                        }, level="warning")
                        continue
                    consumo[entrada["insumo_id"]] = consumo.get(entrada["insumo_id"], ZERO) + q

        dias = Decimal(dias_analise)
        previsoes = []
        for m in materiais.values():
            if not m["ativo"]:
                continue
            total = consumo.get(m["id"], ZERO)
            diario = total / dias
            dias_para_esgotar = int(m["estoque_atual"] / diario) if diario > 0 else None
            previsoes.append({
                "id": m["id"],
                "nome": m["nome"],
                "variacao": m["variacao"],
                "categoria": m["categoria"],
                "unidade": m["unidade"],
                "estoque_atual": m["estoque_atual"],
                "estoque_minimo": m["estoque_minimo"],
                "consumo_total": arredondar(total),
                "consumo_diario": arredondar(diario),
                "dias_para_esgotar": dias_para_esgotar,
                "situacao": situacao_estoque(dias_para_esgotar),
            })
        previsoes.sort(key=lambda r: (r["dias_para_esgotar"] is None, r["dias_para_esgotar"] or 0, r["nome"]))

        resumo = {s: sum(1 for p in previsoes if p["situacao"] == s) for s in SITUACOES}
        log_system_event("previsao_estoque_success", {"materiais": len(previsoes), **resumo})
        return {
            "previsoes": previsoes,
            "resumo": resumo,
            "parametros": {"dias_analise": dias_analise, "total_vendas_periodo": len(vendas)},
        }
    except Exception as e:
        log_system_event("previsao_estoque_error", {"error": str(e)}, level="error")
        raise


# ----------------------
# 6) Vendas por período
# ----------------------

def relatorio_vendas_periodo(
    data_inicio: Optional[str] = None,
    data_fim: Optional[str] = None,
    agrupar_por: str = "mes",
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Agrupa as vendas finalizadas por dia, semana (início no domingo) ou mês."""
    if agrupar_por not in AGRUPAMENTOS:
        raise ValidationFailed("Agrupamento inválido", [f"use um de: {', '.join(AGRUPAMENTOS)}"])
    inicio, fim = validar_periodo(data_inicio, data_fim)
    _preparar(db_path)
    vendas = _finalizadas(db_path, inicio, fim)

    grupos: Dict[str, Dict[str, Any]] = {}
    for v in vendas:
        d = date.fromisoformat(v["data"][:10])
        if agrupar_por == "dia":
            chave = d.isoformat()
        elif agrupar_por == "semana":
            chave = _inicio_semana(d).isoformat()
        else:
            chave = d.strftime("%Y-%m")
        g = grupos.setdefault(chave, {
            "periodo": chave, "total_vendas": 0, "quantidade_itens": 0,
            "faturamento": ZERO, "lucro": ZERO, "vendas": [],
        })
        g["total_vendas"] += 1
        g["quantidade_itens"] += v["quantidade_total"]
        g["faturamento"] += v["total"]
        g["lucro"] += v["lucro_total"]
        g["vendas"].append(v["codigo"])

    relatorio = [grupos[k] for k in sorted(grupos)]
    faturamento = _soma(v["total"] for v in vendas)
    stats = {
        "total_periodos": len(relatorio),
        "total_vendas": len(vendas),
        "faturamento_total": arredondar(faturamento),
        "lucro_total": arredondar(_soma(v["lucro_total"] for v in vendas)),
        "ticket_medio": arredondar(faturamento / len(vendas)) if vendas else arredondar(ZERO),
    }
    return {
        "periodos": relatorio,
        "stats": stats,
        "filtros": {"data_inicio": inicio, "data_fim": fim, "agrupar_por": agrupar_por},
    }


# ----------------------
# 7) Rankings
# ----------------------

def ranking_produtos(
    data_inicio: Optional[str] = None,
    data_fim: Optional[str] = None,
    limite: int = DEFAULTS.limite_ranking,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Produtos mais vendidos por faturamento (valor dos itens antes do desconto)."""
    inicio, fim = validar_periodo(data_inicio, data_fim)
    _preparar(db_path)
    vendas = _finalizadas(db_path, inicio, fim)
    itens = VendaRepo(db_path).items_by_venda(v["id"] for v in vendas)

    ranking: Dict[Any, Dict[str, Any]] = {}
    for venda_id, linhas in itens.items():
        for l in linhas:
            # produto excluído: agrupa pelo nome gravado no item
            chave = l["produto_id"] if l["produto_id"] is not None else l["produto_nome"]
            r = ranking.setdefault(chave, {
                "produto_id": l["produto_id"], "produto_nome": l["produto_nome"],
                "vendas": set(), "quantidade_vendida": 0, "faturamento": ZERO, "lucro": ZERO,
            })
            r["vendas"].add(venda_id)
            r["quantidade_vendida"] += l["quantidade"]
            r["faturamento"] += l["valor_total"]
            r["lucro"] += l["lucro"]

    out = []
    for r in ranking.values():
        out.append({
            "produto_id": r["produto_id"],
            "produto_nome": r["produto_nome"],
            "total_vendas": len(r["vendas"]),
            "quantidade_vendida": r["quantidade_vendida"],
            "faturamento": arredondar(r["faturamento"]),
            "lucro": arredondar(r["lucro"]),
            "preco_medio": arredondar(r["faturamento"] / r["quantidade_vendida"]),
        })
    out.sort(key=lambda r: (r["faturamento"], r["quantidade_vendida"]), reverse=True)
    return {"ranking": out[:max(limite, 0)], "total": len(out)}


def ranking_clientes(
    data_inicio: Optional[str] = None,
    data_fim: Optional[str] = None,
    limite: int = DEFAULTS.limite_ranking,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Clientes por valor gasto; o nome é agrupado sem diferenciar maiúsculas."""
    inicio, fim = validar_periodo(data_inicio, data_fim)
    _preparar(db_path)
    ranking: Dict[str, Dict[str, Any]] = {}
    # mais recentes primeiro: o nome exibido é o da última compra
    for v in reversed(_finalizadas(db_path, inicio, fim)):
        nome = (v["cliente"] or "").strip()
        if not nome:
            continue
        r = ranking.setdefault(nome.lower(), {
            "cliente": nome, "total_compras": 0, "quantidade_itens": 0,
            "valor_gasto": ZERO, "ultima_compra": v["data"],
        })
        r["total_compras"] += 1
        r["quantidade_itens"] += v["quantidade_total"]
        r["valor_gasto"] += v["total"]
        r["ultima_compra"] = max(r["ultima_compra"], v["data"])

    out = [
        dict(r, valor_gasto=arredondar(r["valor_gasto"]), ticket_medio=arredondar(r["valor_gasto"] / r["total_compras"]))
        for r in ranking.values()
    ]
    out.sort(key=lambda r: r["valor_gasto"], reverse=True)
    return {"ranking": out[:max(limite, 0)], "total": len(out)}
