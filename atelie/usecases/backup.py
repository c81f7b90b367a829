# atelie/usecases/backup.py
"""
UC: Backup do banco SQLite para uso não contínuo (o app não roda 24/7).

- criar_backup(): um arquivo por dia, <prefixo>-backup-AAAA-MM-DD.db
- verificar_e_criar_backup(): cria se não houver backup ou se o último
  tiver mais de 24h; depois aplica a retenção
- limpar_backups(): retenção por quantidade, tamanho total e idade
- listar_backups / estatisticas_backup / status_backup / verificar_backup

Obs.:
- A cópia usa a API de backup online do sqlite3, segura com o banco aberto.
- A idade de cada backup vem da data de modificação do arquivo.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from atelie.config import BACKUP_DIR, DB_PATH, DEFAULTS
from atelie.domain.errors import NotFound
from atelie.infra.clock import SYSTEM_CLOCK, SystemClock
from atelie.infra.logger import (
    log_file_operation, log_system_event, print_system
)

MB = 1024 * 1024


def _padrao(prefixo: str) -> str:
    return f"{prefixo}-backup-*.db"


def _idade_texto(horas: float) -> str:
    h = round(horas)
    return f"{h}h" if h < 24 else f"{round(h / 24)}d"


def _arquivos(backup_dir: str, prefixo: str, clock: SystemClock) -> List[Dict[str, Any]]:
    pasta = Path(backup_dir)
    if not pasta.is_dir():
        return []
    agora = clock.now()
    out = []
    for f in pasta.glob(_padrao(prefixo)):
        st = f.stat()
        criado = datetime.fromtimestamp(st.st_mtime)
        horas = (agora - criado).total_seconds() / 3600
        out.append({
            "name": f.name,
            "size": st.st_size,
            "created": criado,
            "age_hours": horas,
            "age": _idade_texto(horas),
            "path": str(f),
        })
    out.sort(key=lambda b: b["created"], reverse=True)
    return out


def listar_backups(
    backup_dir: str = BACKUP_DIR, prefixo: str = DEFAULTS.backup_prefixo, clock: SystemClock = SYSTEM_CLOCK,
) -> List[Dict[str, Any]]:
    """Backups do mais recente para o mais antigo."""
    return _arquivos(backup_dir, prefixo, clock)


def criar_backup(
    db_path: str = DB_PATH,
    backup_dir: str = BACKUP_DIR,
    prefixo: str = DEFAULTS.backup_prefixo,
    clock: SystemClock = SYSTEM_CLOCK,
) -> Dict[str, Any]:
    """Cria o backup do dia; se já existir, apenas informa ``existed=True``."""
    nome = f"{prefixo}-backup-{clock.today().isoformat()}.db"
    destino = Path(backup_dir) / nome
    try:
        if not Path(db_path).is_file():
            raise NotFound("Banco de dados", db_path)
        Path(backup_dir).mkdir(parents=True, exist_ok=True)

        if destino.exists():
            log_system_event("backup_existente", {"name": nome})
            return {"path": str(destino), "name": nome, "existed": True, "size": destino.stat().st_size}

        origem = sqlite3.connect(db_path)
        copia = sqlite3.connect(str(destino))
        try:
            with copia:
                origem.backup(copia)
        finally:
            copia.close()
            origem.close()

        tamanho = destino.stat().st_size
        log_file_operation("backup", str(destino), size=tamanho)
        print_system(f">> Backup criado: {nome} ({tamanho / 1024:.1f} KB)")
        removidos = limpar_backups(backup_dir, prefixo, clock)
        return {"path": str(destino), "name": nome, "existed": False, "size": tamanho, "removidos": removidos}
    except Exception as e:
        log_system_event("backup_error", {"name": nome, "error": str(e)}, level="error")
        raise


def limpar_backups(
    backup_dir: str = BACKUP_DIR,
    prefixo: str = DEFAULTS.backup_prefixo,
    clock: SystemClock = SYSTEM_CLOCK,
    max_arquivos: int = DEFAULTS.backup_max_arquivos,
    max_mb: int = DEFAULTS.backup_max_mb,
    max_dias: int = DEFAULTS.backup_max_dias,
) -> List[str]:
    """Aplica a retenção e devolve os nomes removidos.

    1. quantidade: mantém os ``max_arquivos`` mais recentes;
    2. tamanho: dos restantes, mantém os mais recentes que cabem em ``max_mb``;
    3. idade: remove os que têm mais de ``max_dias`` dias.
    """
    backups = _arquivos(backup_dir, prefixo, clock)
    remover = backups[max_arquivos:]
    restantes = backups[:max_arquivos]

    if sum(b["size"] for b in restantes) > max_mb * MB:
        acumulado = 0
        mantidos = []
        for b in restantes:
            if acumulado + b["size"] <= max_mb * MB:
                mantidos.append(b)
                acumulado += b["size"]
            else:
                remover.append(b)
        restantes = mantidos

    remover.extend(b for b in restantes if b["age_hours"] > max_dias * 24)

    nomes = []
    for b in remover:
        path = Path(b["path"])
        if path.exists():
            path.unlink()
            nomes.append(b["name"])
    if nomes:
        log_system_event("backup_cleanup", {"removidos": nomes})
    return nomes


def verificar_backup(path: str) -> bool:
    """Abre o arquivo e roda ``PRAGMA integrity_check``."""
    if not Path(path).is_file():
        return False
    try:
        conn = sqlite3.connect(Path(path).resolve().as_uri() + "?mode=ro", uri=True)
        try:
            resultado = conn.execute("PRAGMA integrity_check;").fetchone()
        finally:
            conn.close()
    except sqlite3.DatabaseError as e:
        log_system_event("backup_corrompido", {"path": path, "error": str(e)}, level="warning")
        return False
    ok = bool(resultado) and resultado[0] == "ok"
    if not ok:
        log_system_event("backup_corrompido", {"path": path, "resultado": resultado}, level="warning")
    return ok


def estatisticas_backup(
    backup_dir: str = BACKUP_DIR, prefixo: str = DEFAULTS.backup_prefixo, clock: SystemClock = SYSTEM_CLOCK,
) -> Dict[str, Any]:
    backups = _arquivos(backup_dir, prefixo, clock)
    total = sum(b["size"] for b in backups)
    return {
        "count": len(backups),
        "total_size": total,
        "total_size_mb": round(total / MB, 2),
        "oldest": backups[-1]["created"] if backups else None,
        "newest": backups[0]["created"] if backups else None,
        "backups": backups,
    }


def status_backup(
    backup_dir: str = BACKUP_DIR, prefixo: str = DEFAULTS.backup_prefixo, clock: SystemClock = SYSTEM_CLOCK,
) -> Dict[str, Any]:
    """``ok``, ``warning`` (sem backup ou último > 24h) ou ``alert`` (> 48h)."""
    backups = _arquivos(backup_dir, prefixo, clock)
    ultimo: Optional[Dict[str, Any]] = backups[0] if backups else None
    status, mensagem = "ok", "Sistema de backup operacional"
    if ultimo is None:
        status, mensagem = "warning", "Nenhum backup encontrado"
    elif ultimo["age_hours"] > 48:
        status, mensagem = "alert", f"Último backup há {round(ultimo['age_hours'])}h - backup recomendado"
    elif ultimo["age_hours"] > 24:
        status, mensagem = "warning", f"Último backup há {round(ultimo['age_hours'])}h"
    return {
        "status": status,
        "message": mensagem,
        "last_backup": {"name": ultimo["name"], "age": ultimo["age"], "size": ultimo["size"]} if ultimo else None,
        "total_backups": len(backups),
    }


def verificar_e_criar_backup(
    db_path: str = DB_PATH,
    backup_dir: str = BACKUP_DIR,
    prefixo: str = DEFAULTS.backup_prefixo,
    clock: SystemClock = SYSTEM_CLOCK,
) -> Dict[str, Any]:
    """Backup automático na abertura do app."""
    backups = _arquivos(backup_dir, prefixo, clock)
    resultado: Optional[Dict[str, Any]] = None
    if not backups or backups[0]["age_hours"] > DEFAULTS.backup_intervalo_horas:
        resultado = criar_backup(db_path, backup_dir, prefixo, clock)
    else:
        log_system_event("backup_recente", {"name": backups[0]["name"], "age": backups[0]["age"]})
    removidos = limpar_backups(backup_dir, prefixo, clock)
    return {"criado": resultado, "removidos": removidos}
