# tasks.py
"""Envios que rodam em segundo plano, depois da resposta da requisição"""
import logging
import threading

logger = logging.getLogger(__name__)


def run_in_background(target, *args, **kwargs):
    """Executa target numa thread daemon; erros ficam só no log"""
    name = getattr(target, '__name__', repr(target))

    def run():
        try:
            target(*args, **kwargs)
        except Exception:
            logger.exception('Falha na tarefa em segundo plano %s', name)

    thread = threading.Thread(target=run, name=f'tarefa-{name}')
    thread.daemon = True
    thread.start()
    return thread
