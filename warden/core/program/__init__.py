"""
Program model: an in-memory tree of a parsed source unit.

Front ends build nodes and hand the SourceUnit to ``link_unit``, which fills
in parent references and validates the invariants. After linking the tree is
read-only for the rest of the run.

Nodes (nodes.py):
    - SourceUnit, Declaration: files, types, methods, fields
    - Statements: Block, Try, Catch, Throw, Return, VariableDeclaration,
      Lock, Using, ExpressionStatement, If, Loop
    - Expressions: MethodCall, ObjectCreation, VariableAccess, FieldAccess,
      Literal, Assignment, ElementAccess, Lambda, CompoundExpression
    - Variable: a local, parameter, or field slot

Queries (tree.py):
    - children, ancestors, find_descendants, walk, enclosing, declaring_scope
"""

from warden.core.program.builder import link_unit
from warden.core.program.nodes import (
    Assignment,
    Block,
    Catch,
    CompoundExpression,
    Declaration,
    DeclarationKind,
    ElementAccess,
    Expression,
    ExpressionStatement,
    FieldAccess,
    If,
    Lambda,
    Literal,
    Lock,
    Loop,
    MethodCall,
    Node,
    ObjectCreation,
    Return,
    SourceUnit,
    Statement,
    Throw,
    Try,
    Using,
    Variable,
    VariableAccess,
    VariableDeclaration,
    VariableKind,
    dotted_name,
)
from warden.core.program.tree import (
    NodeSequence,
    ancestors,
    children,
    declaring_scope,
    enclosing,
    find_all,
    find_descendants,
    source_unit_of,
    walk,
)

__all__ = [
    # Nodes
    "Assignment",
    "Block",
    "Catch",
    "CompoundExpression",
    "Declaration",
    "DeclarationKind",
    "ElementAccess",
    "Expression",
    "ExpressionStatement",
    "FieldAccess",
    "If",
    "Lambda",
    "Literal",
    "Lock",
    "Loop",
    "MethodCall",
    "Node",
    "ObjectCreation",
    "Return",
    "SourceUnit",
    "Statement",
    "Throw",
    "Try",
    "Using",
    "Variable",
    "VariableAccess",
    "VariableDeclaration",
    "VariableKind",
    "dotted_name",
    # Building
    "link_unit",
    # Queries
    "NodeSequence",
    "ancestors",
    "children",
    "declaring_scope",
    "enclosing",
    "find_all",
    "find_descendants",
    "source_unit_of",
    "walk",
]
