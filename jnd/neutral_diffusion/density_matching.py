"""
Density matching between two adjacent columns.

The sweep is a two-pointer merge on density. Each column contributes its
stable interfaces, from the surface down to the deepest interior interface,
as matching nodes. At every step the column whose next node is lighter is
the reference: it moves onto that node while the other column (the target)
follows to the position holding the same density, found by a bounded
root-find inside the cell just above the target's next node (a virtual
interface). The water between the previous and the new match in both
columns forms one sublayer.

The sweep state is an explicit tuple advanced by a pure transition function
inside lax.while_loop. Pointers only move downward, so a column pair costs
O(nlev). The sweep ends when either column runs out of nodes or when a
root-find does not converge; deeper water is left unmixed for that face.

The sea floor is never a node, so the deepest layer of a column only takes
part down to the last interior interface the other column matches against.
With identical columns the bottom layer exchanges nothing, and a pair of
single-layer columns has no interior exchange at all.
"""

import jax
import jax.numpy as jnp
from jax import lax
from jax.tree_util import tree_map
from typing import NamedTuple, Tuple

from .neutral_diffusion_types import (
    ColumnProfile, NeutralDiffusionParameters, SublayerSide, Sublayers
)
from .root_finding import find_density_position


class ColumnPointer(NamedTuple):
    """Matching position in one column."""

    node: jnp.ndarray     # Next unconsumed node (index into the node table)
    s: jnp.ndarray        # Position within the layer above that node, 0..1
    z: jnp.ndarray        # Depth of the position [m]
    rho: jnp.ndarray      # Density at the position [kg/m³]


class MatchState(NamedTuple):
    """Sweep state: both pointers plus the sublayers produced so far."""

    step: jnp.ndarray
    left: ColumnPointer
    right: ColumnPointer
    sublayers: Sublayers
    failed: jnp.ndarray


@jax.jit
def matching_nodes(interface_mask: jnp.ndarray) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """
    Table of interfaces usable as matching nodes.

    Stable interfaces above the sea floor, packed to the front in surface to
    bottom order.

    Args:
        interface_mask: Stable interfaces [nlev+1]

    Returns:
        Tuple of (interface index per node [nlev+1], number of nodes)
    """
    nlev1 = interface_mask.shape[0]
    level = jnp.arange(nlev1)
    candidate = interface_mask & (level < nlev1 - 1)
    order = jnp.argsort(jnp.where(candidate, level, level + nlev1))
    return order, jnp.sum(candidate)


def _segment(column: ColumnProfile, order: jnp.ndarray, node: jnp.ndarray):
    """Layer between the previous node and `node`, and whether it is matchable water."""
    nlev = column.thickness.shape[0]
    upcoming = order[node]
    previous = order[jnp.maximum(node - 1, 0)]
    layer = jnp.clip(upcoming - 1, 0, nlev - 1)
    real = (node > 0) & (upcoming == previous + 1) & column.cell_mask[layer]
    return layer, real


def _advance_to_node(column: ColumnProfile, order: jnp.ndarray, pointer: ColumnPointer):
    """Move a pointer onto its next node."""
    layer, real = _segment(column, order, pointer.node)
    upcoming = order[pointer.node]

    s_top = jnp.where(real, pointer.s, 0.0)
    s_bottom = jnp.where(real, 1.0, 0.0)
    z_new = column.interface_depth[upcoming]

    side = SublayerSide(
        layer=layer,
        s_top=s_top,
        s_bottom=s_bottom,
        z_top=pointer.z,
        z_bottom=z_new,
        thickness=(s_bottom - s_top) * column.thickness[layer]
    )
    moved = ColumnPointer(
        node=pointer.node + 1,
        s=jnp.zeros_like(pointer.s),
        z=z_new,
        rho=column.interface_density[upcoming]
    )
    return moved, side


def _follow_density(
    column: ColumnProfile,
    order: jnp.ndarray,
    pointer: ColumnPointer,
    rho_star: jnp.ndarray,
    search: jnp.ndarray,
    params: NeutralDiffusionParameters
):
    """Move a target pointer down to the position where its density is rho_star."""
    layer, real = _segment(column, order, pointer.node)

    # Equal density at the current position snaps without a root-find;
    # lighter water or a gap over unstable cells leaves the pointer in place
    need_root = search & real & (rho_star > pointer.rho)

    s_root, converged = lax.cond(
        need_root,
        lambda: find_density_position(
            column.density_coeffs[layer], rho_star, pointer.s,
            params.root_method, params.max_iterations, params.tolerance
        ),
        lambda: (pointer.s, jnp.array(True))
    )
    s_new = jnp.where(need_root, s_root, pointer.s)
    h_layer = column.thickness[layer]
    z_new = jnp.where(
        need_root, column.interface_depth[layer] + s_new * h_layer, pointer.z
    )

    s_top = jnp.where(real, pointer.s, 0.0)
    s_bottom = jnp.where(real, s_new, 0.0)
    side = SublayerSide(
        layer=layer,
        s_top=s_top,
        s_bottom=s_bottom,
        z_top=pointer.z,
        z_bottom=z_new,
        thickness=(s_bottom - s_top) * h_layer
    )
    moved = ColumnPointer(
        node=pointer.node,
        s=s_new,
        z=z_new,
        rho=jnp.where(need_root, rho_star, pointer.rho)
    )
    return moved, side, need_root, converged | ~need_root


def _select(condition, on_true, on_false):
    return tree_map(lambda a, b: jnp.where(condition, a, b), on_true, on_false)


def _empty_sublayers(nsub: int, dtype) -> Sublayers:
    def side():
        return SublayerSide(
            layer=jnp.zeros(nsub, dtype=jnp.int32),
            s_top=jnp.zeros(nsub, dtype=dtype),
            s_bottom=jnp.zeros(nsub, dtype=dtype),
            z_top=jnp.zeros(nsub, dtype=dtype),
            z_bottom=jnp.zeros(nsub, dtype=dtype),
            thickness=jnp.zeros(nsub, dtype=dtype)
        )
    return Sublayers(
        left=side(),
        right=side(),
        ref_is_left=jnp.zeros(nsub, dtype=bool),
        valid=jnp.zeros(nsub, dtype=bool),
        root_finds=jnp.array(0, dtype=jnp.int32),
        root_failures=jnp.array(0, dtype=jnp.int32)
    )


@jax.jit
def match_column_pair(
    left: ColumnProfile,
    right: ColumnProfile,
    params: NeutralDiffusionParameters
) -> Sublayers:
    """
    Build the density-matched sublayers between two adjacent columns.

    Args:
        left: Profile of the column on the left of the face
        right: Profile of the column on the right of the face
        params: Lateral diffusion parameters (root-finding settings)

    Returns:
        Sublayers with 2*nlev entries; unused entries have valid == False
    """
    nlev = left.thickness.shape[0]
    nsub = 2 * nlev
    dtype = left.interface_density.dtype

    left_order, left_count = matching_nodes(left.interface_mask)
    right_order, right_count = matching_nodes(right.interface_mask)

    def start(column, order):
        first = order[0]
        return ColumnPointer(
            node=jnp.array(0, dtype=jnp.int32),
            s=jnp.zeros((), dtype=dtype),
            z=column.interface_depth[first],
            rho=column.interface_density[first]
        )

    def cond_fn(state: MatchState):
        return ((state.step < nsub)
                & (state.left.node < left_count)
                & (state.right.node < right_count)
                & ~state.failed)

    def body_fn(state: MatchState) -> MatchState:
        rho_left = left.interface_density[left_order[state.left.node]]
        rho_right = right.interface_density[right_order[state.right.node]]

        # Re-evaluated at every step: the lighter side is the reference
        tie = rho_left == rho_right
        left_is_ref = rho_left <= rho_right
        rho_star = jnp.minimum(rho_left, rho_right)

        ref_column = _select(left_is_ref, left, right)
        tgt_column = _select(left_is_ref, right, left)
        ref_order = jnp.where(left_is_ref, left_order, right_order)
        tgt_order = jnp.where(left_is_ref, right_order, left_order)
        ref_pointer = _select(left_is_ref, state.left, state.right)
        tgt_pointer = _select(left_is_ref, state.right, state.left)

        ref_moved, ref_side = _advance_to_node(ref_column, ref_order, ref_pointer)

        # Ties snap the target onto its own node, otherwise follow the density
        snapped, snapped_side = _advance_to_node(tgt_column, tgt_order, tgt_pointer)
        followed, followed_side, searched, converged = _follow_density(
            tgt_column, tgt_order, tgt_pointer, rho_star, ~tie, params
        )
        tgt_moved = _select(tie, snapped, followed)
        tgt_side = _select(tie, snapped_side, followed_side)

        new_left = _select(left_is_ref, ref_moved, tgt_moved)
        new_right = _select(left_is_ref, tgt_moved, ref_moved)
        left_side = _select(left_is_ref, ref_side, tgt_side)
        right_side = _select(left_is_ref, tgt_side, ref_side)

        step = state.step
        record = lambda arr, val: arr.at[step].set(val)
        sub = state.sublayers
        sub = sub._replace(
            left=tree_map(record, sub.left, left_side),
            right=tree_map(record, sub.right, right_side),
            ref_is_left=sub.ref_is_left.at[step].set(left_is_ref),
            valid=sub.valid.at[step].set(converged),
            root_finds=sub.root_finds + searched.astype(jnp.int32),
            root_failures=sub.root_failures + (~converged).astype(jnp.int32)
        )

        return MatchState(
            step=step + 1,
            left=_select(converged, new_left, state.left),
            right=_select(converged, new_right, state.right),
            sublayers=sub,
            failed=~converged
        )

    initial = MatchState(
        step=jnp.array(0, dtype=jnp.int32),
        left=start(left, left_order),
        right=start(right, right_order),
        sublayers=_empty_sublayers(nsub, dtype),
        failed=jnp.array(False)
    )
    final = lax.while_loop(cond_fn, body_fn, initial)
    return final.sublayers


# Vectorized version for multiple faces
match_faces = jax.vmap(match_column_pair, in_axes=(0, 0, None))
