"""
WithdrawalService: the withdrawal pipeline orchestrator.

Runs one withdrawal preparation as an ordered sequence of fallible steps:

    VALIDATED -> DATA_FETCHED -> CONTEXT_READY -> PROOF_READY -> TRANSACTION_READY

Each step's output is the next step's input; nothing is reordered and only
the three data fetches run concurrently. The first failure aborts the run,
is reported to the event sink, and is re-raised unchanged: no partial
artifact (a proof without its operation, say) ever reaches the caller.

Execution is a separate, explicit call so a caller can review the prepared
withdrawal (amounts, fee, recipient) before committing funds on-chain.

Usage:
    service = WithdrawalService.from_config(WithdrawalConfig.from_env(), signer=wallet.sign)
    prepared = service.prepare_withdrawal(request)
    print(service.calculate_amounts(request.withdraw_amount))
    tx = service.execute_withdrawal(prepared)
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from privacy_pool.config import WithdrawalConfig
from privacy_pool.core.indexer import IndexerClient
from privacy_pool.core.models import (
    FetchedWithdrawalData,
    PreparedWithdrawal,
    UserOperation,
    WithdrawalAmounts,
    WithdrawalContext,
    WithdrawalProof,
    WithdrawalRequest,
)
from privacy_pool.core.note_index import InMemoryNoteIndexTracker, JsonFileNoteIndexTracker, NoteIndexTracker
from privacy_pool.core.rpc import JsonRpcClient, PoolContract
from privacy_pool.core.wallet import MnemonicRestorer
from privacy_pool.crypto.derivation import KeccakSecretDeriver, SecretDeriver
from privacy_pool.crypto.prover import SubprocessProver, WithdrawalProver
from privacy_pool.errors import SubmissionError, WithdrawalError
from privacy_pool.events import EventSink, LoggingEventSink, PipelineStage, WithdrawalEvent
from privacy_pool.relayer.bundler import AccountLayer, BundlerClient
from privacy_pool.withdrawal.context import calculate_withdrawal_context
from privacy_pool.withdrawal.data import WithdrawalDataFetcher
from privacy_pool.withdrawal.proof import generate_withdrawal_proof
from privacy_pool.withdrawal.transaction import PreparedTransaction, prepare_withdrawal_transaction
from privacy_pool.withdrawal.validation import calculate_withdrawal_amounts, validate_withdrawal_request

logger = logging.getLogger("privacy_pool.withdrawal")


class WithdrawalService:
    """Prepare and execute privacy pool withdrawals."""

    def __init__(
        self,
        fetcher: WithdrawalDataFetcher,
        tracker: NoteIndexTracker,
        deriver: SecretDeriver,
        prover: WithdrawalProver,
        accounts: AccountLayer,
        config: WithdrawalConfig | None = None,
        events: EventSink | None = None,
        restore: MnemonicRestorer | None = None,
        closeables: list[Any] | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.tracker = tracker
        self.deriver = deriver
        self.prover = prover
        self.accounts = accounts
        self.config = config or WithdrawalConfig()
        self.events = events or LoggingEventSink()
        self.restore = restore
        self._closeables = closeables or []

    @classmethod
    def from_config(
        cls,
        config: WithdrawalConfig,
        signer: Callable[[UserOperation], str] | None = None,
        events: EventSink | None = None,
    ) -> WithdrawalService:
        """Wire the default HTTP, RPC, prover and tracker adapters from `config`."""
        indexer = IndexerClient(config.indexer_url, timeout=config.http_timeout)
        rpc = JsonRpcClient(config.rpc_url, timeout=config.http_timeout)
        bundler = JsonRpcClient(config.bundler_url, timeout=config.http_timeout)

        tracker: NoteIndexTracker
        if config.note_index_path:
            tracker = JsonFileNoteIndexTracker(config.note_index_path)
        else:
            tracker = InMemoryNoteIndexTracker()

        return cls(
            fetcher=WithdrawalDataFetcher(indexer, indexer, PoolContract(rpc, config.pool_address)),
            tracker=tracker,
            deriver=KeccakSecretDeriver(),
            prover=SubprocessProver(config.prover_command, timeout=config.prover_timeout),
            accounts=BundlerClient(bundler, rpc, config, signer=signer),
            config=config,
            events=events,
            closeables=[indexer, rpc, bundler],
        )

    # ------------------------------------------------------------------
    # Local checks
    # ------------------------------------------------------------------

    def validate(self, request: WithdrawalRequest) -> None:
        validate_withdrawal_request(request)

    def calculate_amounts(self, withdraw_amount: str) -> WithdrawalAmounts:
        """Fee preview using the configured protocol fee."""
        return calculate_withdrawal_amounts(withdraw_amount, self.config.relay_fee_bps)

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    def fetch_withdrawal_data(self) -> FetchedWithdrawalData:
        return self.fetcher.fetch()

    def calculate_withdrawal_context(
        self, request: WithdrawalRequest, fetched: FetchedWithdrawalData
    ) -> WithdrawalContext:
        return calculate_withdrawal_context(
            request,
            fetched,
            tracker=self.tracker,
            deriver=self.deriver,
            config=self.config,
            restore=self.restore,
        )

    def generate_withdrawal_proof(
        self, request: WithdrawalRequest, context: WithdrawalContext
    ) -> WithdrawalProof:
        return generate_withdrawal_proof(request, context, self.prover)

    def prepare_withdrawal_transaction(
        self, context: WithdrawalContext, proof: WithdrawalProof
    ) -> PreparedTransaction:
        return prepare_withdrawal_transaction(context, proof, self.accounts)

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def process_withdrawal(self, request: WithdrawalRequest) -> PreparedWithdrawal:
        """
        Run the full preparation pipeline. Never submits anything.

        Raises:
            WithdrawalError: the first step failure, tagged with `.stage`
        """
        self._emit(PipelineStage.STARTED, "Starting withdrawal preparation")
        stage = PipelineStage.VALIDATED
        try:
            self.validate(request)
            self._emit(stage, "Request validated")

            stage = PipelineStage.DATA_FETCHED
            fetched = self.fetch_withdrawal_data()
            self._emit(
                stage,
                "Withdrawal data fetched",
                state_tree_leaves=len(fetched.state_tree_leaves),
                approved_labels=len(fetched.asp_data.approved_labels),
                asp_root=fetched.asp_data.asp_root,
                pool_scope=fetched.pool_scope,
            )

            stage = PipelineStage.CONTEXT_READY
            context = self.calculate_withdrawal_context(request, fetched)
            self._emit(
                stage,
                "Withdrawal context calculated",
                context=context.context,
                next_note_index=context.next_note_index,
            )

            stage = PipelineStage.PROOF_READY
            proof = self.generate_withdrawal_proof(request, context)
            self._emit(stage, "ZK proof generated")

            stage = PipelineStage.TRANSACTION_READY
            tx = self.prepare_withdrawal_transaction(context, proof)
            self._emit(stage, "Withdrawal transaction prepared", account=tx.account.address)

        except WithdrawalError as err:
            if err.stage is None:
                err.stage = stage
            logger.debug(f"Pipeline aborted at {stage.value}", exc_info=True)
            self._emit(
                PipelineStage.FAILED,
                f"Withdrawal preparation failed while reaching {stage.value}: {err}",
                error=type(err).__name__,
            )
            raise
        except Exception as err:
            logger.debug(f"Pipeline aborted at {stage.value}", exc_info=True)
            self._emit(
                PipelineStage.FAILED,
                f"Unexpected failure while reaching {stage.value}: {err}",
                error=type(err).__name__,
            )
            raise

        return PreparedWithdrawal(
            context=context,
            proof=proof,
            call_data=tx.call_data,
            user_operation=tx.user_operation,
            account=tx.account,
        )

    def prepare_withdrawal(self, request: WithdrawalRequest) -> PreparedWithdrawal:
        """Prepare a withdrawal for preview. Alias of process_withdrawal."""
        return self.process_withdrawal(request)

    def execute_withdrawal(self, prepared: PreparedWithdrawal) -> str:
        """
        Submit a prepared withdrawal. Only ever called explicitly by the caller.

        Returns:
            str: the transaction (user operation) identifier

        Raises:
            SubmissionError: the account layer rejected the operation
        """
        try:
            tx_id = self.accounts.execute_withdrawal_operation(prepared.account, prepared.user_operation)
        except WithdrawalError as err:
            if err.stage is None:
                err.stage = PipelineStage.EXECUTED
            self._emit(PipelineStage.FAILED, f"Withdrawal execution failed: {err}", error=type(err).__name__)
            raise
        except Exception as err:
            self._emit(PipelineStage.FAILED, f"Withdrawal execution failed: {err}", error=type(err).__name__)
            raise SubmissionError(f"Withdrawal submission failed: {err}", stage=PipelineStage.EXECUTED) from err

        self._emit(PipelineStage.EXECUTED, "Withdrawal submitted", transaction=tx_id)
        return tx_id

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _emit(self, stage: PipelineStage, message: str, **fields: Any) -> None:
        try:
            self.events(WithdrawalEvent(stage=stage, message=message, fields=fields))
        except Exception as err:
            # A broken sink must not change the pipeline outcome
            logger.warning(f"Event sink failed on {stage.value}: {err}")

    def close(self) -> None:
        for resource in self._closeables:
            resource.close()

    def __enter__(self) -> WithdrawalService:
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()
