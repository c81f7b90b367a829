# atelie/infra/logger.py
"""
Sistema de logging das operações do ateliê.

Este módulo configura e fornece loggers para registrar as operações
críticas: movimentações de estoque, ciclo de vida das vendas, escritas
no banco, backups/exportações e alertas de qualidade de dados.
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional


# Flag global para habilitar/desabilitar logging
ENABLE_LOGGING = False
# Flag global para habilitar/desabilitar prints/output
ENABLE_OUTPUT = False

def print_system(*args, **kwargs):
    """Print controlado pelo ENABLE_OUTPUT."""
    if ENABLE_OUTPUT:
        print(*args, **kwargs)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

def setup_logger(name: str, log_file: str, level: int = logging.INFO) -> logging.Logger:
    """
    Configura um logger com um único handler de arquivo.

    Args:
        name: Nome do logger
        log_file: Caminho do arquivo de log
        level: Nível de logging

    Returns:
        Logger configurado
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    while logger.handlers:
        logger.removeHandler(logger.handlers[0])

    # delay=True: o arquivo só é criado na primeira mensagem
    file_handler = logging.FileHandler(log_file, encoding='utf-8', delay=True)
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(file_handler)

    return logger

# Diretório base para logs (na pasta do pacote)
BASE_DIR = Path(__file__).parent.parent
LOGS_DIR = BASE_DIR / "logs"

LOG_FILES = {
    "transactions": LOGS_DIR / "transactions.log",
    "estoque": LOGS_DIR / "estoque.log",
    "vendas": LOGS_DIR / "vendas.log",
    "database": LOGS_DIR / "database.log",
    "system": LOGS_DIR / "system.log",
}

transaction_logger = setup_logger('atelie.transactions', str(LOG_FILES["transactions"]))
estoque_logger = setup_logger('atelie.estoque', str(LOG_FILES["estoque"]))
vendas_logger = setup_logger('atelie.vendas', str(LOG_FILES["vendas"]))
database_logger = setup_logger('atelie.database', str(LOG_FILES["database"]))
system_logger = setup_logger('atelie.system', str(LOG_FILES["system"]))


def _enabled() -> bool:
    return ENABLE_LOGGING or ENABLE_OUTPUT


def log_transaction(operation: str, data: Dict[str, Any], result: Optional[Any] = None, error: Optional[str] = None) -> None:
    """
    Registra o desfecho de um caso de uso.

    Args:
        operation: Nome da operação (criar_venda, ajustar_estoque, ...)
        data: Dados de entrada relevantes
        result: Resultado da operação (opcional)
        error: Mensagem de erro (opcional)
    """
    if not _enabled():
        return
    if error:
        transaction_logger.error(f"TRANSACTION_FAILED: {operation} - {error} - Data: {data}")
    else:
        transaction_logger.info(f"TRANSACTION_SUCCESS: {operation} - Result: {result} - Data: {data}")

def log_movimento(action: str, material_id: Any, quantidade: Any, **kwargs) -> None:
    """Log de movimentações de estoque (entrada/saida/ajuste)."""
    if not _enabled():
        return
    log_data = {"action": action, "material_id": material_id, "quantidade": str(quantidade), **kwargs}
    estoque_logger.info(f"ESTOQUE_{action.upper()}: {log_data}")

def log_venda(action: str, venda_id: Any, **kwargs) -> None:
    """Log do ciclo de vida da venda (criar, editar, finalizar, cancelar, excluir)."""
    if not _enabled():
        return
    log_data = {"action": action, "venda_id": venda_id, **kwargs}
    vendas_logger.info(f"VENDA_{action.upper()}: {log_data}")

def log_database_operation(table: str, operation: str, affected_rows: int = 0, **kwargs) -> None:
    """
    Log específico para operações no banco de dados.

    Args:
        table: Nome da tabela
        operation: Operação SQL (INSERT, UPDATE, DELETE, SELECT)
        affected_rows: Número de linhas afetadas
        **kwargs: Dados adicionais
    """
    if not _enabled():
        return
    log_data = {"table": table, "operation": operation, "affected_rows": affected_rows, **kwargs}
    database_logger.info(f"DB_{operation}: {log_data}")

def log_system_event(event: str, details: Dict[str, Any] = None, level: str = "info") -> None:
    """
    Log para eventos do sistema.

    Args:
        event: Descrição do evento
        details: Detalhes adicionais (opcional)
        level: Nível do log (info, warning, error)
    """
    if not _enabled():
        return
    log_data = {"event": event, "details": details or {}}
    log_method = getattr(system_logger, level.lower(), system_logger.info)
    log_method(f"SYSTEM_EVENT: {event} - {log_data}")

def log_file_operation(operation: str, file_path: str, rows_processed: int = 0, **kwargs) -> None:
    """Log para operações de arquivo (backup, exportação)."""
    if not _enabled():
        return
    log_data = {"operation": operation, "file_path": file_path, "rows_processed": rows_processed, **kwargs}
    system_logger.info(f"FILE_{operation.upper()}: {log_data}")

def get_log_summary(log_type: str = "transactions", lines: int = 100) -> str:
    """
    Obtém as linhas mais recentes de um log.

    Args:
        log_type: transactions, estoque, vendas, database ou system
        lines: Número de linhas a retornar
    """
    log_file = LOG_FILES.get(log_type)
    if not log_file or not log_file.exists():
        return f"Log {log_type} não encontrado."

    try:
        with open(log_file, 'r', encoding='utf-8') as f:
            all_lines = f.readlines()
        return ''.join(all_lines[-lines:])
    except OSError as e:
        return f"Erro ao ler log {log_type}: {e}"